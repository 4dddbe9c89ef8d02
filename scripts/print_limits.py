#!/usr/bin/env python3
"""Print pipeline, chat and API limits from config. Run from repo root: python scripts/print_limits.py"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from tenantarmor.core.config import load_settings


def main():
    """Print document cap, context budgets, polling ceiling and rate limit."""
    settings = load_settings()
    print("Pipeline & API limits")
    print("---------------------")
    print(f"  MAX_DOCUMENT_CHARS        = {settings.max_document_chars} (extracted text cap before analysis)")
    print(f"  INSIGHTS_CONTEXT_CHARS    = {settings.insights_context_chars} (condensed context for actionable insights)")
    print(f"  CHAT_CONTEXT_CHARS        = {settings.chat_context_chars} (digest {settings.digest_max_chars} + knowledge {settings.knowledge_max_chars})")
    print(f"  KNOWLEDGE_TOP_K           = {settings.knowledge_top_k} (entries per chat question)")
    print(f"  KNOWLEDGE_ENTRY_MAX_CHARS = {settings.knowledge_entry_max_chars}")
    print(f"  Polling                   = every {settings.poll_interval_seconds} s, at most {settings.poll_max_attempts} attempts")
    print(f"  Rate limit                = {settings.rate_limit_requests} requests / {settings.rate_limit_window_seconds} s (per client IP)")
    print(f"  Backends                  = store={settings.store_backend} queue={settings.queue_backend}")
    print("")
    print("Env: MAX_DOCUMENT_CHARS, CHAT_CONTEXT_CHARS, POLL_INTERVAL_SECONDS, POLL_MAX_ATTEMPTS, STORE_BACKEND, QUEUE_BACKEND")


if __name__ == "__main__":
    main()
