import os
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

load_dotenv()


class Settings(BaseModel):
    """Application settings loaded from environment: OpenAI key and model names, Qdrant knowledge collection, Redis queue/store backends, context budgets, and client polling ceiling.
    Why available: Built once at startup and passed into the dispatcher, worker, and chat assembler so every component sees the same limits."""
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    analysis_model: str = os.getenv("ANALYSIS_MODEL", "gpt-4.1")
    chat_model: str = os.getenv("CHAT_MODEL", "gpt-4o")
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    llm_timeout_seconds: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "120"))

    qdrant_url: str = os.getenv("QDRANT_URL", "http://localhost:6333")
    qdrant_collection: str = os.getenv("QDRANT_COLLECTION", "legal_knowledge")
    knowledge_top_k: int = int(os.getenv("KNOWLEDGE_TOP_K", "3"))

    # memory | redis
    store_backend: str = os.getenv("STORE_BACKEND", "memory")
    queue_backend: str = os.getenv("QUEUE_BACKEND", "memory")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    redis_key_prefix: str = os.getenv("REDIS_KEY_PREFIX", "tenantarmor")
    queue_name: str = os.getenv("QUEUE_NAME", "analysis-jobs")
    worker_receive_timeout: int = int(os.getenv("WORKER_RECEIVE_TIMEOUT", "5"))
    worker_error_backoff_seconds: float = float(os.getenv("WORKER_ERROR_BACKOFF_SECONDS", "2"))

    max_document_chars: int = int(os.getenv("MAX_DOCUMENT_CHARS", "120000"))
    insights_context_chars: int = int(os.getenv("INSIGHTS_CONTEXT_CHARS", "3500"))
    chat_context_chars: int = int(os.getenv("CHAT_CONTEXT_CHARS", "4000"))
    knowledge_entry_max_chars: int = int(os.getenv("KNOWLEDGE_ENTRY_MAX_CHARS", "500"))

    poll_interval_seconds: int = int(os.getenv("POLL_INTERVAL_SECONDS", "5"))
    poll_max_attempts: int = int(os.getenv("POLL_MAX_ATTEMPTS", "360"))

    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "20"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

    prompt_version: str = os.getenv("PROMPT_VERSION", "v1")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator(
        "knowledge_top_k",
        "worker_receive_timeout",
        "max_document_chars",
        "insights_context_chars",
        "chat_context_chars",
        "knowledge_entry_max_chars",
        "poll_interval_seconds",
        "poll_max_attempts",
        "rate_limit_requests",
        "rate_limit_window_seconds",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Reject zero or negative limits coming from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("store_backend", "queue_backend")
    @classmethod
    def known_backend(cls, v):
        v = (v or "").strip().lower()
        if v not in ("memory", "redis"):
            raise ValueError("must be 'memory' or 'redis'")
        return v

    @property
    def digest_max_chars(self) -> int:
        """Half of the chat context budget goes to the job digest."""
        return self.chat_context_chars // 2

    @property
    def knowledge_max_chars(self) -> int:
        """The other half goes to retrieved general knowledge."""
        return self.chat_context_chars - self.digest_max_chars


def load_settings() -> Settings:
    """Build Settings from the current environment. Called once by the app factory and the worker script."""
    return Settings()
