"""
Client-side polling for analysis jobs.

Polls GET /analyses/{job_id} at a fixed interval until the job is terminal or
the attempt ceiling is reached. Running out of attempts is not a pipeline
failure: the job may still finish and can be polled again later.
"""
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

API_BASE = os.getenv("API_BASE", "http://localhost:8000")

DEFAULT_POLL_INTERVAL_SECONDS = 5
DEFAULT_POLL_MAX_ATTEMPTS = 360
TERMINAL_STATUSES = frozenset({"COMPLETE", "PARTIAL_COMPLETE", "FAILED"})


class JobNotFoundError(Exception):
    def __init__(self, job_id: str):
        super().__init__(f"Analysis not found: {job_id}")
        self.job_id = job_id


class PollingTimeout(Exception):
    """The attempt ceiling was reached before the job became terminal. last_status is the last status seen (None if no poll succeeded)."""

    def __init__(self, job_id: str, attempts: int, last_status: Optional[str]):
        super().__init__(f"Analysis {job_id} still {last_status or 'unknown'} after {attempts} polls")
        self.job_id = job_id
        self.attempts = attempts
        self.last_status = last_status


@dataclass(frozen=True)
class PollingConfig:
    interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS

    @classmethod
    def from_limits(cls, limits: Dict[str, Any]) -> "PollingConfig":
        """Build from a GET /limits payload, falling back to the defaults for missing keys."""
        return cls(
            interval_seconds=limits.get("poll_interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS),
            max_attempts=limits.get("poll_max_attempts", DEFAULT_POLL_MAX_ATTEMPTS),
        )


class JobStatusClient:
    def __init__(
        self,
        base_url: str = API_BASE,
        config: Optional[PollingConfig] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        request_timeout: float = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.config = config or PollingConfig()
        self._session = session or requests.Session()
        self._sleep = sleep
        self._timeout = request_timeout

    def fetch_limits(self) -> Dict[str, Any]:
        resp = self._session.get(f"{self.base_url}/limits", timeout=self._timeout)
        resp.raise_for_status()
        return resp.json()

    def get_status(self, job_id: str) -> Dict[str, Any]:
        """One poll. Raises JobNotFoundError on 404 and requests.HTTPError on other error statuses."""
        resp = self._session.get(f"{self.base_url}/analyses/{job_id}", timeout=self._timeout)
        if resp.status_code == 404:
            raise JobNotFoundError(job_id)
        resp.raise_for_status()
        return resp.json()

    def wait_for_terminal(self, job_id: str) -> Dict[str, Any]:
        """Poll until COMPLETE, PARTIAL_COMPLETE or FAILED and return that record.
        Transient transport errors and 5xx responses count as attempts; PollingTimeout carries the last status seen."""
        last_status: Optional[str] = None
        for attempt in range(1, self.config.max_attempts + 1):
            try:
                record = self.get_status(job_id)
            except JobNotFoundError:
                raise
            except requests.exceptions.RequestException as e:
                logger.warning("poll_failed", extra={"job_id": job_id, "attempt": attempt, "error": str(e)})
            else:
                last_status = record.get("status")
                if last_status in TERMINAL_STATUSES:
                    return record
            if attempt < self.config.max_attempts:
                self._sleep(self.config.interval_seconds)
        raise PollingTimeout(job_id, self.config.max_attempts, last_status)
