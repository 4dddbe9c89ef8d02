"""OpenAI client construction and the language-model wrapper used by the worker (JSON completions) and the chat assembler (embeddings, streaming)."""
import json
import logging
from typing import Any, Dict, Iterator, List, Optional

import openai
from openai import OpenAI

from tenantarmor.core.config import Settings
from tenantarmor.core.errors import EmbeddingError, LanguageModelError
from tenantarmor.utils.retry import with_retry

logger = logging.getLogger(__name__)


def build_openai_client(settings: Settings) -> OpenAI:
    """Construct an OpenAI client from settings. Called once at startup; the instance is passed to OpenAILanguageModel."""
    return OpenAI(api_key=settings.openai_api_key, timeout=settings.llm_timeout_seconds, max_retries=0)


def _as_model_error(e: Exception) -> LanguageModelError:
    if isinstance(e, openai.APITimeoutError):
        return LanguageModelError(f"language model timed out: {e}", kind="timeout")
    return LanguageModelError(f"language model provider error: {e}", kind="provider")


class OpenAILanguageModel:
    """Language-model service: schema-constrained JSON completions, token streaming, and query embeddings.
    Why available: Single seam over the OpenAI SDK so the worker and chat assembler can be tested with fakes."""

    def __init__(
        self,
        client: OpenAI,
        *,
        analysis_model: str,
        chat_model: str,
        embedding_model: str,
        timeout_seconds: float,
        embed_retries: int = 2,
    ) -> None:
        self._client = client
        self.analysis_model = analysis_model
        self.chat_model = chat_model
        self.embedding_model = embedding_model
        self._timeout = timeout_seconds
        self._embed_retries = embed_retries

    @classmethod
    def from_settings(cls, client: OpenAI, settings: Settings) -> "OpenAILanguageModel":
        return cls(
            client,
            analysis_model=settings.analysis_model,
            chat_model=settings.chat_model,
            embedding_model=settings.embedding_model,
            timeout_seconds=settings.llm_timeout_seconds,
        )

    def complete_json(self, system: str, user: str, temperature: float = 0.2) -> Dict[str, Any]:
        """One JSON-mode completion, no retry. Raises LanguageModelError(kind=timeout|provider|malformed)."""
        try:
            resp = self._client.chat.completions.create(
                model=self.analysis_model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                response_format={"type": "json_object"},
                temperature=temperature,
                timeout=self._timeout,
            )
        except openai.OpenAIError as e:
            raise _as_model_error(e) from e

        raw = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        if not raw:
            raise LanguageModelError("language model returned no content", kind="malformed")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise LanguageModelError(f"language model returned invalid JSON: {e.msg}", kind="malformed") from e
        if not isinstance(data, dict):
            raise LanguageModelError("language model returned JSON that is not an object", kind="malformed")
        return data

    def stream_chat(
        self,
        system: str,
        messages: List[Dict[str, str]],
        temperature: float = 0.5,
    ) -> Iterator[str]:
        """Yield response text deltas. Errors before or during the stream raise LanguageModelError."""
        try:
            stream = self._client.chat.completions.create(
                model=self.chat_model,
                messages=[{"role": "system", "content": system}, *messages],
                temperature=temperature,
                stream=True,
                timeout=self._timeout,
            )
            for ev in stream:
                delta = ev.choices[0].delta.content if ev.choices else None
                if delta:
                    yield delta
        except openai.OpenAIError as e:
            raise _as_model_error(e) from e

    def embed(self, text: str) -> List[float]:
        """Embed a single query string (transport retries only). Raises EmbeddingError."""
        try:
            resp = with_retry(
                lambda: self._client.embeddings.create(model=self.embedding_model, input=[text]),
                retries=self._embed_retries,
                backoff_seconds=0.25,
                retry_on=(openai.APIConnectionError, openai.APITimeoutError, openai.RateLimitError),
            )
        except openai.OpenAIError as e:
            raise EmbeddingError(f"embedding failed: {e}") from e
        vector: Optional[List[float]] = resp.data[0].embedding if resp.data else None
        if not vector:
            raise EmbeddingError("embedding service returned no vector")
        return vector

    def embed_many(self, texts: List[str]) -> List[List[float]]:
        """Batch embedding for knowledge-base loading."""
        try:
            resp = with_retry(lambda: self._client.embeddings.create(model=self.embedding_model, input=texts))
        except openai.OpenAIError as e:
            raise EmbeddingError(f"embedding failed: {e}") from e
        return [d.embedding for d in resp.data]
