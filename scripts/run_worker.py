#!/usr/bin/env python3
"""Consume analysis jobs from the Redis queue. Run from repo root: python scripts/run_worker.py

Requires QUEUE_BACKEND=redis and STORE_BACKEND=redis; run as many copies as needed."""
import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from tenantarmor.core.config import load_settings
from tenantarmor.core.services import build_services
from tenantarmor.observability.logging import configure_logging

logger = logging.getLogger("tenantarmor.worker")


def main() -> int:
    parser = argparse.ArgumentParser(description="Analysis queue worker")
    parser.add_argument(
        "--requeue-inflight",
        action="store_true",
        help="return unacknowledged messages to the queue first (only when no other worker is running)",
    )
    args = parser.parse_args()

    settings = load_settings()
    configure_logging(settings.log_level)
    if settings.queue_backend != "redis" or settings.store_backend != "redis":
        logger.error("worker_requires_redis", extra={"store_backend": settings.store_backend, "queue_backend": settings.queue_backend})
        return 2

    services = build_services(settings)
    if args.requeue_inflight:
        services.queue.requeue_inflight()

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    services.worker.run_forever(stop)
    return 0


if __name__ == "__main__":
    sys.exit(main())
