"""
Job status state machine.

QUEUED -> EXTRACTING -> ANALYZING -> INSIGHTS_PENDING -> COMPLETE
with EXTRACTING/ANALYZING -> FAILED, INSIGHTS_PENDING -> PARTIAL_COMPLETE,
and QUEUED -> FAILED for the dispatcher's compensating write.
"""
import time
from dataclasses import replace
from typing import Any, Dict, Optional

from tenantarmor.core.errors import InvalidTransition, InvariantViolation
from tenantarmor.jobs.models import AnalysisJob, JobStatus

TERMINAL = frozenset({JobStatus.COMPLETE, JobStatus.PARTIAL_COMPLETE, JobStatus.FAILED})
RESULT_STATES = frozenset({JobStatus.COMPLETE, JobStatus.PARTIAL_COMPLETE})
ERROR_STATES = frozenset({JobStatus.FAILED, JobStatus.PARTIAL_COMPLETE})

ORDER: Dict[JobStatus, int] = {
    JobStatus.QUEUED: 0,
    JobStatus.EXTRACTING: 1,
    JobStatus.ANALYZING: 2,
    JobStatus.INSIGHTS_PENDING: 3,
    JobStatus.COMPLETE: 4,
    JobStatus.PARTIAL_COMPLETE: 4,
    JobStatus.FAILED: 4,
}

TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.QUEUED: frozenset({JobStatus.EXTRACTING, JobStatus.FAILED}),
    JobStatus.EXTRACTING: frozenset({JobStatus.ANALYZING, JobStatus.FAILED}),
    JobStatus.ANALYZING: frozenset({JobStatus.INSIGHTS_PENDING, JobStatus.FAILED}),
    JobStatus.INSIGHTS_PENDING: frozenset({JobStatus.COMPLETE, JobStatus.PARTIAL_COMPLETE}),
    JobStatus.COMPLETE: frozenset(),
    JobStatus.PARTIAL_COMPLETE: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in TRANSITIONS[current]


def transition(
    job: AnalysisJob,
    target: JobStatus,
    *,
    result: Optional[Dict[str, Any]] = None,
    error_detail: Optional[str] = None,
    checkpoint: Optional[Dict[str, Any]] = None,
    now: Optional[float] = None,
) -> AnalysisJob:
    """Return a copy of job advanced to target, or raise InvalidTransition.
    Result and error_detail are required exactly where the record invariants demand them; updated_at never moves backwards."""
    if not can_transition(job.status, target):
        raise InvalidTransition(job.status.value, target.value)

    if target in RESULT_STATES and not result:
        raise InvalidTransition(job.status.value, target.value, "requires a result")
    if target in ERROR_STATES and not (error_detail or "").strip():
        raise InvalidTransition(job.status.value, target.value, "requires error_detail")

    if target == JobStatus.INSIGHTS_PENDING and not checkpoint:
        raise InvalidTransition(job.status.value, target.value, "requires a checkpoint")

    ts = time.time() if now is None else now
    new_job = replace(
        job,
        status=target,
        result=dict(result) if target in RESULT_STATES else None,
        error_detail=error_detail.strip() if target in ERROR_STATES else None,
        # only INSIGHTS_PENDING carries the phase-2 checkpoint
        checkpoint=dict(checkpoint) if target == JobStatus.INSIGHTS_PENDING else None,
        updated_at=max(ts, job.updated_at),
    )
    check_invariants(new_job)
    return new_job


def check_invariants(job: AnalysisJob) -> None:
    """Raise InvariantViolation unless result is present iff status is COMPLETE/PARTIAL_COMPLETE and error_detail is present iff status is FAILED/PARTIAL_COMPLETE."""
    has_result = job.result is not None
    if has_result != (job.status in RESULT_STATES):
        raise InvariantViolation(f"{job.job_id}: result present={has_result} with status {job.status.value}")
    has_error = job.error_detail is not None
    if has_error != (job.status in ERROR_STATES):
        raise InvariantViolation(f"{job.job_id}: error_detail present={has_error} with status {job.status.value}")
    if job.updated_at < job.created_at:
        raise InvariantViolation(f"{job.job_id}: updated_at before created_at")


def is_regression(previous: JobStatus, current: JobStatus) -> bool:
    """True if current is an earlier stage than previous, or a different status after a terminal one."""
    if previous in TERMINAL:
        return current != previous
    return ORDER[current] < ORDER[previous]
