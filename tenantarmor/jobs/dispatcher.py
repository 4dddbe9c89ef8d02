import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from tenantarmor.core.errors import DispatchError, PipelineError, StoreUnavailable, SubmissionRejected
from tenantarmor.jobs import state
from tenantarmor.jobs.models import AnalysisJob, DispatchMessage, DocumentClass, DocumentRef, JobStatus
from tenantarmor.jobs.queue import WorkQueue
from tenantarmor.jobs.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionRequest:
    owner_id: str
    document_class: str
    jurisdiction: str
    document_ref: DocumentRef
    extracted_text: str


def validate_submission(req: SubmissionRequest) -> DocumentClass:
    """Synchronous input checks. Raises SubmissionRejected; nothing is written when this fails."""
    if not (req.owner_id or "").strip():
        raise SubmissionRejected("owner_id is required")
    if not (req.jurisdiction or "").strip():
        raise SubmissionRejected("jurisdiction is required")
    if not (req.extracted_text or "").strip():
        raise SubmissionRejected("extracted_text is empty")
    ref = req.document_ref
    if ref is None or not (ref.key or "").strip() or not (ref.file_name or "").strip():
        raise SubmissionRejected("document_ref requires key and file_name")
    try:
        return DocumentClass((req.document_class or "").strip().upper())
    except ValueError:
        allowed = ", ".join(c.value for c in DocumentClass)
        raise SubmissionRejected(f"document_class must be one of: {allowed}")


class JobDispatcher:
    """Creates the QUEUED record and enqueues its DispatchMessage.
    If the enqueue fails after the record is written, the record is moved to FAILED and the job_id is still returned, so no record waits in QUEUED without a message."""

    def __init__(
        self,
        store: RecordStore,
        queue: WorkQueue,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._store = store
        self._queue = queue
        self._clock = clock
        self._new_id = id_factory

    def submit(self, req: SubmissionRequest) -> str:
        document_class = validate_submission(req)
        jurisdiction = req.jurisdiction.strip().upper()
        now = self._clock()
        job = AnalysisJob(
            job_id=self._new_id(),
            owner_id=req.owner_id.strip(),
            document_ref=req.document_ref,
            jurisdiction=jurisdiction,
            document_class=document_class,
            status=JobStatus.QUEUED,
            created_at=now,
            updated_at=now,
        )

        try:
            self._store.create(job)
        except StoreUnavailable as e:
            logger.error("dispatch_record_write_failed", extra={"job_id": job.job_id, "error": str(e)})
            raise DispatchError(str(e)) from e

        message = DispatchMessage(
            job_id=job.job_id,
            extracted_text=req.extracted_text,
            jurisdiction=jurisdiction,
            document_class=document_class,
            owner_id=job.owner_id,
            file_name=req.document_ref.file_name,
        )
        try:
            self._queue.publish(message)
        except PipelineError as e:
            self._compensate(job, f"Dispatch failed: could not enqueue analysis ({e})")
            return job.job_id

        logger.info(
            "job_dispatched",
            extra={"job_id": job.job_id, "document_class": document_class.value, "jurisdiction": jurisdiction},
        )
        return job.job_id

    def _compensate(self, job: AnalysisJob, reason: str) -> None:
        logger.error("dispatch_enqueue_failed", extra={"job_id": job.job_id, "reason": reason})
        failed = state.transition(job, JobStatus.FAILED, error_detail=reason, now=self._clock())
        try:
            self._store.transition(job.job_id, JobStatus.QUEUED, failed)
        except PipelineError:
            logger.exception("dispatch_compensation_failed", extra={"job_id": job.job_id})
            raise DispatchError(reason)

