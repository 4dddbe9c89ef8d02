"""
Analysis phases run by the job processor.

Each phase returns a tagged result instead of raising: Success carries the
phase output, Fail ends the job in FAILED, PartialSuccess ends it in
PARTIAL_COMPLETE with the value it still managed to produce.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from tenantarmor.analysis.condense import build_insights_context
from tenantarmor.analysis.schemas import EvictionAnalysis, InsightsEnvelope, LeaseAnalysis, dump
from tenantarmor.core.config import Settings
from tenantarmor.core.errors import LanguageModelError
from tenantarmor.jobs.models import DispatchMessage, DocumentClass, JobStatus
from tenantarmor.prompts.loader import get_system_prompt, get_user_prompt, render
from tenantarmor.utils.text import normalize_document_text

logger = logging.getLogger(__name__)

ANALYSIS_TEMPERATURE = 0.2
INSIGHTS_TEMPERATURE = 0.5

_ANALYSIS_COMPONENTS = {
    DocumentClass.LEASE: ("lease_analysis", LeaseAnalysis),
    DocumentClass.EVICTION_NOTICE: ("eviction_analysis", EvictionAnalysis),
}


@dataclass(frozen=True)
class Success:
    value: Any


@dataclass(frozen=True)
class Fail:
    reason: str


@dataclass(frozen=True)
class PartialSuccess:
    value: Dict[str, Any]
    reason: str


PhaseResult = Union[Success, Fail, PartialSuccess]


@dataclass
class PhaseContext:
    """Working state for one delivery. text is filled by extraction, analysis by the structured-analysis phase (or from the record checkpoint on resume)."""

    message: DispatchMessage
    text: Optional[str] = None
    analysis: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Phase:
    name: str
    entry_status: JobStatus
    run: Callable[[PhaseContext], PhaseResult]


def _validation_reason(e: ValidationError) -> str:
    first = e.errors()[0] if e.errors() else {}
    loc = ".".join(str(p) for p in first.get("loc", ())) or "response"
    return f"malformed response: {loc}: {first.get('msg', 'invalid')}"


class AnalysisPhases:
    """Builds the three-phase pipeline over a language model.
    Why available: Keeps prompt selection, validation and the partial-failure rule of the insights phase in one place; the processor only drives transitions."""

    def __init__(self, language_model, settings: Settings) -> None:
        self._llm = language_model
        self._settings = settings

    def pipeline(self) -> List[Phase]:
        return [
            Phase("text extraction", JobStatus.EXTRACTING, self.extract),
            Phase("structured analysis", JobStatus.ANALYZING, self.analyze),
            Phase("actionable insights", JobStatus.INSIGHTS_PENDING, self.insights),
        ]

    def prepare_text(self, message: DispatchMessage) -> str:
        text = normalize_document_text(message.extracted_text)
        return text[: self._settings.max_document_chars]

    def extract(self, ctx: PhaseContext) -> PhaseResult:
        text = self.prepare_text(ctx.message)
        if not text:
            return Fail("no text could be extracted from the document")
        ctx.text = text
        return Success(text)

    def analyze(self, ctx: PhaseContext) -> PhaseResult:
        msg = ctx.message
        text = ctx.text if ctx.text is not None else self.prepare_text(msg)
        if not text:
            return Fail("document text is empty")

        component, schema = _ANALYSIS_COMPONENTS[msg.document_class]
        version = self._settings.prompt_version
        values = {"jurisdiction": msg.jurisdiction, "file_name": msg.file_name or "document", "document": text}
        system = render(get_system_prompt(component, version=version), **values)
        user = render(get_user_prompt(component, version=version), **values)

        try:
            raw = self._llm.complete_json(system, user, temperature=ANALYSIS_TEMPERATURE)
            analysis = dump(schema.model_validate(raw))
        except LanguageModelError as e:
            return Fail(str(e))
        except ValidationError as e:
            return Fail(_validation_reason(e))

        ctx.analysis = analysis
        return Success(analysis)

    def insights(self, ctx: PhaseContext) -> PhaseResult:
        msg = ctx.message
        analysis = ctx.analysis or {}
        context = build_insights_context(analysis, msg.document_class, self._settings.insights_context_chars)
        version = self._settings.prompt_version
        values = {"jurisdiction": msg.jurisdiction, "document_class": msg.document_class.value, "context": context}
        system = render(get_system_prompt("actionable_insights", version=version), **values)
        user = render(get_user_prompt("actionable_insights", version=version), **values)

        try:
            raw = self._llm.complete_json(system, user, temperature=INSIGHTS_TEMPERATURE)
            envelope = dump(InsightsEnvelope.model_validate(raw))
        except LanguageModelError as e:
            return PartialSuccess(dict(analysis), str(e))
        except ValidationError as e:
            return PartialSuccess(dict(analysis), _validation_reason(e))

        merged = dict(analysis)
        merged.update(envelope)
        return Success(merged)
