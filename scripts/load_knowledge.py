#!/usr/bin/env python3
"""Embed general legal knowledge entries and upsert them into Qdrant.
Run from repo root: python scripts/load_knowledge.py path/to/entries.json

The file holds a JSON list of {"entry_id", "jurisdiction", "title", "text"} objects."""
import argparse
import json
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from tenantarmor.chat.knowledge import KnowledgeIndex
from tenantarmor.core.config import load_settings
from tenantarmor.core.openai_client import OpenAILanguageModel, build_openai_client
from tenantarmor.core.services import build_qdrant_client
from tenantarmor.observability.logging import configure_logging

logger = logging.getLogger("tenantarmor.load_knowledge")


def load_entries(path: Path):
    entries = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(entries, list):
        raise ValueError("expected a JSON list of entries")
    out = []
    for i, e in enumerate(entries):
        if not (e.get("entry_id") and e.get("jurisdiction") and (e.get("text") or "").strip()):
            raise ValueError(f"entry {i} needs entry_id, jurisdiction and text")
        out.append(e)
    return out


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("path", type=Path)
    parser.add_argument("--batch-size", type=int, default=32)
    args = parser.parse_args()

    settings = load_settings()
    configure_logging(settings.log_level)
    entries = load_entries(args.path)

    llm = OpenAILanguageModel.from_settings(build_openai_client(settings), settings)
    index = KnowledgeIndex(build_qdrant_client(settings), settings.qdrant_collection)

    total = 0
    for start in range(0, len(entries), args.batch_size):
        batch = entries[start : start + args.batch_size]
        vectors = llm.embed_many([e["text"] for e in batch])
        if total == 0:
            index.ensure_collection(len(vectors[0]))
        total += index.upsert(batch, vectors)

    logger.info("knowledge_loaded", extra={"entries": total, "collection": settings.qdrant_collection})
    return 0


if __name__ == "__main__":
    sys.exit(main())
