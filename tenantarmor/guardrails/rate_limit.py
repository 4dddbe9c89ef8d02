import time
from collections import defaultdict
from typing import Callable

from fastapi import HTTPException
from starlette.requests import Request


class SimpleRateLimiter:
    """Sliding-window rate limiter; in-memory (per process). Used by the API to cap requests per client IP.
    Why available: Protects the analysis and chat endpoints (each chat turn costs model calls) from abuse."""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.time):
        """Configure limiter: max_requests per window_seconds per client IP."""
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self.storage = defaultdict(list)  # ip -> [timestamps]

    def check(self, request: Request):
        """Raise 429 if the client has exceeded the rate limit; otherwise record the request. Called on each protected endpoint."""
        ip = request.client.host if request.client else "unknown"
        self.hit(ip)

    def hit(self, key: str) -> None:
        now = self._clock()
        recent = [t for t in self.storage[key] if now - t < self.window_seconds]

        if len(recent) >= self.max_requests:
            self.storage[key] = recent
            raise HTTPException(
                status_code=429,
                detail="Rate limit exceeded. Please retry later.",
                headers={"Retry-After": str(int(self.window_seconds - (now - recent[0])) + 1)},
            )

        recent.append(now)
        self.storage[key] = recent
