from tenantarmor.core.errors import JobNotFound
from tenantarmor.jobs.models import AnalysisJob
from tenantarmor.jobs.store import RecordStore


class StatusPoller:
    """Read-only status lookups for GET /analyses/{job_id}. Never writes and never waits on processing."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def get(self, job_id: str) -> AnalysisJob:
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job
