"""
Chat context assembly for follow-up questions about a finished analysis.

The system prompt carries two bounded blocks: a digest of the job result and
general legal knowledge retrieved for the job's jurisdiction. Losing the
knowledge search degrades the answer; losing the embedding or the model ends
the stream with an error frame.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from tenantarmor.chat.context import KNOWLEDGE_UNAVAILABLE, no_knowledge_note, pack_knowledge
from tenantarmor.chat.digest import build_job_digest
from tenantarmor.core.config import Settings
from tenantarmor.core.errors import AnalysisNotReady, EmbeddingError, JobNotFound, KnowledgeSearchError, LanguageModelError
from tenantarmor.jobs.models import AnalysisJob
from tenantarmor.jobs.store import RecordStore
from tenantarmor.prompts.loader import get_system_prompt, render

logger = logging.getLogger(__name__)

CHAT_TEMPERATURE = 0.5

EMBEDDING_FAILED_MESSAGE = "Could not process your question right now. Please try again."
MODEL_FAILED_MESSAGE = "The assistant could not generate a response. Please try again."


@dataclass(frozen=True)
class AssembledPrompt:
    system_prompt: str
    digest: str
    knowledge: str
    knowledge_available: bool


def last_user_message(messages: List[Dict[str, str]]) -> str:
    if not messages or messages[-1].get("role") != "user":
        return ""
    return (messages[-1].get("content") or "").strip()


class ChatContextAssembler:
    def __init__(self, store: RecordStore, language_model, knowledge_index, settings: Settings) -> None:
        self._store = store
        self._llm = language_model
        self._index = knowledge_index
        self._settings = settings

    def load_job(self, job_id: str) -> AnalysisJob:
        """Fetch the record and require a result. Raises JobNotFound or AnalysisNotReady (still running, or FAILED)."""
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if job.result is None:
            raise AnalysisNotReady(job_id, job.status.value)
        return job

    def _knowledge(self, job: AnalysisJob, vector: List[float]) -> tuple[str, bool]:
        s = self._settings
        if self._index is None:
            return KNOWLEDGE_UNAVAILABLE, False
        try:
            entries = self._index.search(vector, job.jurisdiction, s.knowledge_top_k)
        except KnowledgeSearchError as e:
            logger.warning("knowledge_search_degraded", extra={"job_id": job.job_id, "error": str(e)})
            return KNOWLEDGE_UNAVAILABLE, False
        if not entries:
            return no_knowledge_note(job.jurisdiction), True
        return pack_knowledge(entries, s.knowledge_entry_max_chars, s.knowledge_max_chars), True

    def assemble(self, job_id: str, question: str) -> AssembledPrompt:
        """Build the chat system prompt for one question. Raises JobNotFound, AnalysisNotReady or EmbeddingError."""
        job = self.load_job(job_id)
        digest = build_job_digest(job, self._settings.digest_max_chars)
        vector = self._llm.embed(question)
        knowledge, available = self._knowledge(job, vector)

        system = render(
            get_system_prompt("chat_assistant", version=self._settings.prompt_version),
            jurisdiction=job.jurisdiction,
            file_name=job.document_ref.file_name,
            digest=digest,
            knowledge=knowledge,
        )
        return AssembledPrompt(system_prompt=system, digest=digest, knowledge=knowledge, knowledge_available=available)

    def stream(self, job_id: str, messages: List[Dict[str, str]]) -> Iterator[Dict[str, Any]]:
        """Yield delta frames, then one done frame; or a single error frame if the embedding or the model fails.
        Call load_job first when the caller needs not-found / not-ready as a status code rather than a frame."""
        question = last_user_message(messages)
        history = [
            {"role": m["role"], "content": m.get("content") or ""}
            for m in messages
            if m.get("role") in ("user", "assistant")
        ]

        prompt: Optional[AssembledPrompt] = None
        try:
            prompt = self.assemble(job_id, question)
            for delta in self._llm.stream_chat(prompt.system_prompt, history, temperature=CHAT_TEMPERATURE):
                yield {"type": "delta", "text": delta}
        except (JobNotFound, AnalysisNotReady) as e:
            yield {"type": "error", "message": str(e)}
            return
        except EmbeddingError as e:
            logger.warning("chat_embedding_failed", extra={"job_id": job_id, "error": str(e)})
            yield {"type": "error", "message": EMBEDDING_FAILED_MESSAGE}
            return
        except LanguageModelError as e:
            logger.warning("chat_model_failed", extra={"job_id": job_id, "kind": e.kind, "error": str(e)})
            yield {"type": "error", "message": MODEL_FAILED_MESSAGE}
            return

        yield {"type": "done", "knowledge_available": prompt.knowledge_available}
