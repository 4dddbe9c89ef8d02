"""
Record store for analysis jobs: one record per job_id, reads by primary key only.

InMemoryRecordStore serves the standalone deployment and tests; RedisRecordStore
keeps one JSON document per job and uses WATCH/MULTI for conditional transitions.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis

from tenantarmor.core.errors import JobAlreadyExists, JobNotFound, StaleTransition, StoreUnavailable
from tenantarmor.jobs.models import AnalysisJob, JobStatus

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """Interface shared by the dispatcher (create), the worker (transition) and the read paths (get)."""

    @abstractmethod
    def create(self, job: AnalysisJob) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, job_id: str) -> Optional[AnalysisJob]:
        raise NotImplementedError

    @abstractmethod
    def transition(self, job_id: str, expected: JobStatus, new_job: AnalysisJob) -> None:
        """Replace the record only if it is still in the expected status; raise StaleTransition otherwise."""
        raise NotImplementedError


class InMemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self._jobs: Dict[str, AnalysisJob] = {}
        self._lock = threading.Lock()

    def create(self, job: AnalysisJob) -> None:
        with self._lock:
            if job.job_id in self._jobs:
                raise JobAlreadyExists(job.job_id)
            self._jobs[job.job_id] = job

    def get(self, job_id: str) -> Optional[AnalysisJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def transition(self, job_id: str, expected: JobStatus, new_job: AnalysisJob) -> None:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFound(job_id)
            if current.status != expected:
                raise StaleTransition(job_id, expected.value, current.status.value)
            self._jobs[job_id] = new_job

    def __len__(self) -> int:
        return len(self._jobs)


class RedisRecordStore(RecordStore):
    def __init__(self, client: redis.Redis, key_prefix: str = "tenantarmor") -> None:
        self._redis = client
        self._prefix = key_prefix

    def _key(self, job_id: str) -> str:
        return f"{self._prefix}:job:{job_id}"

    def create(self, job: AnalysisJob) -> None:
        try:
            created = self._redis.set(self._key(job.job_id), job.to_json(), nx=True)
        except redis.RedisError as e:
            raise StoreUnavailable(f"record store write failed: {e}") from e
        if not created:
            raise JobAlreadyExists(job.job_id)

    def get(self, job_id: str) -> Optional[AnalysisJob]:
        try:
            raw = self._redis.get(self._key(job_id))
        except redis.RedisError as e:
            raise StoreUnavailable(f"record store read failed: {e}") from e
        if raw is None:
            return None
        return AnalysisJob.from_json(raw)

    def transition(self, job_id: str, expected: JobStatus, new_job: AnalysisJob) -> None:
        key = self._key(job_id)

        def _apply(pipe) -> None:
            raw = pipe.get(key)
            if raw is None:
                raise JobNotFound(job_id)
            current = AnalysisJob.from_json(raw)
            if current.status != expected:
                raise StaleTransition(job_id, expected.value, current.status.value)
            pipe.multi()
            pipe.set(key, new_job.to_json())

        try:
            self._redis.transaction(_apply, key)
        except redis.RedisError as e:
            raise StoreUnavailable(f"record store transition failed: {e}") from e
