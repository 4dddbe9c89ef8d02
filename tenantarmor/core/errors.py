"""Exception taxonomy for the analysis pipeline."""
from typing import Optional


class PipelineError(Exception):
    """Base class for errors raised by the analysis pipeline."""


class SubmissionRejected(PipelineError):
    """Input validation failed at the dispatcher; no job was created."""


class DispatchError(PipelineError):
    """The initial record could not be written."""


class StoreUnavailable(PipelineError):
    """The record store could not be reached."""


class QueueUnavailable(PipelineError):
    """The work queue could not be reached."""


class JobNotFound(PipelineError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobAlreadyExists(PipelineError):
    def __init__(self, job_id: str):
        super().__init__(f"Job already exists: {job_id}")
        self.job_id = job_id


class AnalysisNotReady(PipelineError):
    """Chat was requested for a job that has no usable result."""

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Analysis {job_id} has no result yet (status {status})")
        self.job_id = job_id
        self.status = status


class InvalidTransition(PipelineError):
    def __init__(self, current: str, target: str, reason: str = "not allowed"):
        super().__init__(f"Transition {current} -> {target} {reason}")
        self.current = current
        self.target = target


class StaleTransition(PipelineError):
    """A conditional write lost: the record was no longer in the expected status."""

    def __init__(self, job_id: str, expected: str, actual: Optional[str]):
        super().__init__(f"Job {job_id} expected status {expected}, found {actual}")
        self.job_id = job_id
        self.expected = expected
        self.actual = actual


class InvariantViolation(PipelineError):
    pass


class LanguageModelError(PipelineError):
    """A language-model call failed. kind is one of: timeout, provider, malformed."""

    def __init__(self, message: str, kind: str = "provider"):
        super().__init__(message)
        self.kind = kind


class EmbeddingError(PipelineError):
    pass


class KnowledgeSearchError(PipelineError):
    pass
