"""Explicit construction of every external client and pipeline component, done once at startup."""
import logging
from dataclasses import dataclass
from typing import Optional

import redis
from qdrant_client import QdrantClient

from tenantarmor.chat.assembler import ChatContextAssembler
from tenantarmor.chat.knowledge import KnowledgeIndex
from tenantarmor.core.config import Settings
from tenantarmor.core.openai_client import OpenAILanguageModel, build_openai_client
from tenantarmor.jobs.dispatcher import JobDispatcher
from tenantarmor.jobs.phases import AnalysisPhases
from tenantarmor.jobs.poller import StatusPoller
from tenantarmor.jobs.queue import InMemoryWorkQueue, RedisWorkQueue, WorkQueue
from tenantarmor.jobs.store import InMemoryRecordStore, RecordStore, RedisRecordStore
from tenantarmor.jobs.worker import JobProcessor, QueueWorker

logger = logging.getLogger(__name__)


def build_redis(settings: Settings) -> redis.Redis:
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


def build_qdrant_client(settings: Settings) -> QdrantClient:
    return QdrantClient(url=settings.qdrant_url)


@dataclass
class Services:
    settings: Settings
    store: RecordStore
    queue: WorkQueue
    dispatcher: JobDispatcher
    poller: StatusPoller
    worker: QueueWorker
    assembler: ChatContextAssembler


def assemble_services(
    settings: Settings,
    store: RecordStore,
    queue: WorkQueue,
    language_model,
    knowledge_index: Optional[KnowledgeIndex],
) -> Services:
    """Wire pipeline components over already-built backends. Tests call this with in-memory backends and fakes."""
    processor = JobProcessor(store, AnalysisPhases(language_model, settings).pipeline())
    return Services(
        settings=settings,
        store=store,
        queue=queue,
        dispatcher=JobDispatcher(store, queue),
        poller=StatusPoller(store),
        worker=QueueWorker(
            queue,
            processor,
            receive_timeout=settings.worker_receive_timeout,
            error_backoff_seconds=settings.worker_error_backoff_seconds,
        ),
        assembler=ChatContextAssembler(store, language_model, knowledge_index, settings),
    )


def build_services(settings: Settings) -> Services:
    """Build real clients from settings: OpenAI, Qdrant, and Redis when either backend is 'redis'."""
    client: Optional[redis.Redis] = None
    if "redis" in (settings.store_backend, settings.queue_backend):
        client = build_redis(settings)

    store: RecordStore = (
        RedisRecordStore(client, key_prefix=settings.redis_key_prefix)
        if settings.store_backend == "redis"
        else InMemoryRecordStore()
    )
    queue: WorkQueue = (
        RedisWorkQueue(client, settings.queue_name, key_prefix=settings.redis_key_prefix)
        if settings.queue_backend == "redis"
        else InMemoryWorkQueue()
    )

    language_model = OpenAILanguageModel.from_settings(build_openai_client(settings), settings)
    knowledge_index = KnowledgeIndex(build_qdrant_client(settings), settings.qdrant_collection)

    logger.info(
        "services_built",
        extra={"store_backend": settings.store_backend, "queue_backend": settings.queue_backend},
    )
    return assemble_services(settings, store, queue, language_model, knowledge_index)
