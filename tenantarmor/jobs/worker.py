"""
Job processor and queue consumption loop.

The processor is idempotent per message: terminal records are acknowledged
with zero writes, interrupted jobs resume from their persisted status, and
every transition is a conditional write so a duplicate delivery racing on
another worker stops at its first lost write.
"""
import logging
import threading
import time
from typing import Callable, List, Optional

from tenantarmor.core.errors import JobNotFound, QueueUnavailable, StaleTransition, StoreUnavailable
from tenantarmor.jobs import state
from tenantarmor.jobs.models import AnalysisJob, DispatchMessage, JobStatus
from tenantarmor.jobs.phases import Fail, PartialSuccess, Phase, PhaseContext, PhaseResult
from tenantarmor.jobs.queue import WorkQueue
from tenantarmor.jobs.store import RecordStore

logger = logging.getLogger(__name__)

_RESUME_INDEX = {
    JobStatus.QUEUED: 0,
    JobStatus.EXTRACTING: 0,
    JobStatus.ANALYZING: 1,
    JobStatus.INSIGHTS_PENDING: 2,
}


class _Stop(Exception):
    """Raised inside the driver when a conditional write lost; the other delivery owns the job."""


def _unexpected_outcome(phase: Phase, ctx: PhaseContext, e: Exception) -> PhaseResult:
    """An exception escaping a phase is recorded like any other phase failure, never redelivered.
    The insights phase still keeps the analysis it was given."""
    reason = f"unexpected error: {e.__class__.__name__}: {e}"
    if phase.entry_status == JobStatus.INSIGHTS_PENDING and ctx.analysis:
        return PartialSuccess(dict(ctx.analysis), reason)
    return Fail(reason)


class JobProcessor:
    def __init__(self, store: RecordStore, phases: List[Phase], clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._phases = phases
        self._clock = clock

    def process(self, message: DispatchMessage) -> Optional[JobStatus]:
        """Run the remaining phases for message.job_id. Returns the status the record was left in, or None when nothing was done (missing record, lost race)."""
        job = self._store.get(message.job_id)
        if job is None:
            logger.warning("job_record_missing", extra={"job_id": message.job_id})
            return None
        if state.is_terminal(job.status):
            logger.info("job_already_terminal", extra={"job_id": job.job_id, "status": job.status.value})
            return job.status

        ctx = PhaseContext(message=message)
        if job.status == JobStatus.INSIGHTS_PENDING:
            if not job.checkpoint:
                logger.error("job_checkpoint_missing", extra={"job_id": job.job_id})
                return None
            ctx.analysis = dict(job.checkpoint)

        try:
            return self._drive(job, ctx, _RESUME_INDEX[job.status])
        except _Stop:
            return None

    def _drive(self, job: AnalysisJob, ctx: PhaseContext, start: int) -> JobStatus:
        outcome = None
        for phase in self._phases[start:]:
            if job.status != phase.entry_status:
                checkpoint = ctx.analysis if phase.entry_status == JobStatus.INSIGHTS_PENDING else None
                job = self._advance(job, phase.entry_status, checkpoint=checkpoint)

            logger.info("phase_started", extra={"job_id": job.job_id, "phase": phase.name})
            try:
                outcome = phase.run(ctx)
            except Exception as e:
                logger.exception("phase_error", extra={"job_id": job.job_id, "phase": phase.name})
                outcome = _unexpected_outcome(phase, ctx, e)

            if isinstance(outcome, Fail):
                logger.warning("phase_failed", extra={"job_id": job.job_id, "phase": phase.name, "reason": outcome.reason})
                job = self._advance(job, JobStatus.FAILED, error_detail=f"{phase.name} failed: {outcome.reason}")
                return job.status
            if isinstance(outcome, PartialSuccess):
                logger.warning("phase_partial", extra={"job_id": job.job_id, "phase": phase.name, "reason": outcome.reason})
                job = self._advance(
                    job,
                    JobStatus.PARTIAL_COMPLETE,
                    result=outcome.value,
                    error_detail=f"{phase.name} failed: {outcome.reason}",
                )
                return job.status

        job = self._advance(job, JobStatus.COMPLETE, result=outcome.value)
        logger.info("job_completed", extra={"job_id": job.job_id})
        return job.status

    def _advance(self, job: AnalysisJob, target: JobStatus, **fields) -> AnalysisJob:
        new_job = state.transition(job, target, now=self._clock(), **fields)
        try:
            self._store.transition(job.job_id, job.status, new_job)
        except (StaleTransition, JobNotFound) as e:
            logger.info("job_transition_lost", extra={"job_id": job.job_id, "target": target.value, "error": str(e)})
            raise _Stop() from e
        return new_job


class QueueWorker:
    """Consumes DispatchMessages one at a time.
    Phase failures end up in the record and the message is acknowledged. Only an unreachable store or queue returns the message for redelivery (after a backoff); any other error is logged and the message is acknowledged."""

    def __init__(
        self,
        queue: WorkQueue,
        processor: JobProcessor,
        receive_timeout: float = 5,
        error_backoff_seconds: float = 2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._queue = queue
        self._processor = processor
        self._receive_timeout = receive_timeout
        self._backoff = error_backoff_seconds
        self._sleep = sleep

    def run_once(self, timeout: Optional[float] = None) -> bool:
        """Process at most one delivery. Returns False when the queue was empty."""
        delivery = self._queue.receive(self._receive_timeout if timeout is None else timeout)
        if delivery is None:
            return False

        job_id = delivery.message.job_id
        t0 = time.perf_counter()
        try:
            status = self._processor.process(delivery.message)
        except (StoreUnavailable, QueueUnavailable) as e:
            logger.warning("job_processing_deferred", extra={"job_id": job_id, "error": str(e)})
            self._queue.nack(delivery)
            self._sleep(self._backoff)
            return True
        except Exception:
            logger.exception("job_processing_error", extra={"job_id": job_id})
            self._queue.ack(delivery)
            return True

        self._queue.ack(delivery)
        logger.info(
            "job_delivery_done",
            extra={
                "job_id": job_id,
                "status": status.value if status else None,
                "elapsed_ms": round((time.perf_counter() - t0) * 1000.0, 2),
            },
        )
        return True

    def run_forever(self, stop_event: threading.Event) -> None:
        logger.info("worker_started")
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                # queue itself unreachable
                logger.exception("worker_receive_error")
                stop_event.wait(self._backoff)
        logger.info("worker_stopped")


class StandaloneWorker:
    """Runs a QueueWorker on a daemon thread inside the API process (in-memory queue deployment)."""

    def __init__(self, worker: QueueWorker) -> None:
        self._worker = worker
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._worker.run_forever, args=(self._stop,), name="analysis-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 10) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())
