"""
At-least-once work queue carrying DispatchMessage payloads.

A received message stays in flight until ack(); nack() or requeue_inflight()
hands it back for redelivery, so consumers must tolerate duplicates.
"""
import logging
import queue
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import redis

from tenantarmor.core.errors import QueueUnavailable
from tenantarmor.jobs.models import DispatchMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Delivery:
    message: DispatchMessage
    receipt: str


def _decode(raw: str) -> Optional[DispatchMessage]:
    try:
        return DispatchMessage.from_json(raw)
    except (ValueError, KeyError, TypeError):
        logger.error("queue_message_malformed", extra={"raw_preview": (raw or "")[:120]})
        return None


class WorkQueue(ABC):
    @abstractmethod
    def publish(self, message: DispatchMessage) -> None:
        raise NotImplementedError

    @abstractmethod
    def receive(self, timeout: float = 5) -> Optional[Delivery]:
        raise NotImplementedError

    @abstractmethod
    def ack(self, delivery: Delivery) -> None:
        raise NotImplementedError

    @abstractmethod
    def nack(self, delivery: Delivery) -> None:
        raise NotImplementedError

    @abstractmethod
    def requeue_inflight(self) -> int:
        """Return every unacknowledged message to the queue (worker restart). Returns the count moved."""
        raise NotImplementedError


class InMemoryWorkQueue(WorkQueue):
    """In-process queue for the standalone deployment: the API process runs its own worker thread over it."""

    def __init__(self) -> None:
        self._pending: "queue.Queue[str]" = queue.Queue()
        self._inflight: Dict[str, str] = {}
        self._lock = threading.Lock()

    def publish(self, message: DispatchMessage) -> None:
        self._pending.put(message.to_json())

    def receive(self, timeout: float = 5) -> Optional[Delivery]:
        try:
            raw = self._pending.get(timeout=timeout) if timeout else self._pending.get_nowait()
        except queue.Empty:
            return None
        message = _decode(raw)
        if message is None:
            return None
        receipt = str(uuid.uuid4())
        with self._lock:
            self._inflight[receipt] = raw
        return Delivery(message=message, receipt=receipt)

    def ack(self, delivery: Delivery) -> None:
        with self._lock:
            self._inflight.pop(delivery.receipt, None)

    def nack(self, delivery: Delivery) -> None:
        with self._lock:
            raw = self._inflight.pop(delivery.receipt, None)
        if raw is not None:
            self._pending.put(raw)

    def requeue_inflight(self) -> int:
        with self._lock:
            raws = list(self._inflight.values())
            self._inflight.clear()
        for raw in raws:
            self._pending.put(raw)
        return len(raws)

    def pending_count(self) -> int:
        return self._pending.qsize()

    def inflight_count(self) -> int:
        with self._lock:
            return len(self._inflight)


class RedisWorkQueue(WorkQueue):
    """Reliable-queue pattern on two Redis lists: LPUSH to publish, BLMOVE into a processing list to receive, LREM to ack."""

    def __init__(self, client: redis.Redis, name: str, key_prefix: str = "tenantarmor") -> None:
        self._redis = client
        self._queue_key = f"{key_prefix}:queue:{name}"
        self._processing_key = f"{key_prefix}:queue:{name}:processing"

    def publish(self, message: DispatchMessage) -> None:
        try:
            self._redis.lpush(self._queue_key, message.to_json())
        except redis.RedisError as e:
            raise QueueUnavailable(f"enqueue failed: {e}") from e

    def receive(self, timeout: float = 5) -> Optional[Delivery]:
        try:
            raw = self._redis.blmove(self._queue_key, self._processing_key, timeout, "RIGHT", "LEFT")
        except redis.RedisError as e:
            raise QueueUnavailable(f"receive failed: {e}") from e
        if raw is None:
            return None
        message = _decode(raw)
        if message is None:
            self._redis.lrem(self._processing_key, 1, raw)
            return None
        return Delivery(message=message, receipt=raw)

    def ack(self, delivery: Delivery) -> None:
        try:
            self._redis.lrem(self._processing_key, 1, delivery.receipt)
        except redis.RedisError as e:
            raise QueueUnavailable(f"ack failed: {e}") from e

    def nack(self, delivery: Delivery) -> None:
        try:
            pipe = self._redis.pipeline()
            pipe.lrem(self._processing_key, 1, delivery.receipt)
            pipe.rpush(self._queue_key, delivery.receipt)
            pipe.execute()
        except redis.RedisError as e:
            raise QueueUnavailable(f"nack failed: {e}") from e

    def requeue_inflight(self) -> int:
        moved = 0
        try:
            while self._redis.lmove(self._processing_key, self._queue_key, "LEFT", "RIGHT") is not None:
                moved += 1
        except redis.RedisError as e:
            raise QueueUnavailable(f"requeue failed: {e}") from e
        if moved:
            logger.info("queue_inflight_requeued", extra={"count": moved})
        return moved
