"""General legal knowledge stored in Qdrant, one point per entry with a jurisdiction payload."""
import logging
import uuid
from typing import Any, Dict, List

from qdrant_client import QdrantClient
from qdrant_client.http.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointStruct,
    VectorParams,
)

from tenantarmor.core.errors import KnowledgeSearchError

logger = logging.getLogger(__name__)

NAMESPACE = uuid.UUID("5b0c9d3e-8f21-4c6a-9e47-2a1d6b7f0c53")


def stable_point_id(entry_id: str) -> str:
    """Deterministic Qdrant point id for a knowledge entry, so reloading the same file overwrites instead of duplicating."""
    return str(uuid.uuid5(NAMESPACE, entry_id))


class KnowledgeIndex:
    """Similarity search over general legal knowledge, filtered by jurisdiction.
    Why available: Gives the chat assembler broader tenant-law context than the single analysed document."""

    def __init__(self, client: QdrantClient, collection: str) -> None:
        self._client = client
        self.collection = collection

    def search(self, vector: List[float], jurisdiction: str, top_k: int) -> List[Dict[str, Any]]:
        """Return up to top_k entries for the jurisdiction, best match first. Raises KnowledgeSearchError on any backend failure."""
        try:
            res = self._client.query_points(
                collection_name=self.collection,
                query=vector,
                limit=top_k,
                with_payload=True,
                query_filter=Filter(
                    must=[FieldCondition(key="jurisdiction", match=MatchValue(value=jurisdiction))]
                ),
            )
        except Exception as e:
            raise KnowledgeSearchError(f"knowledge search failed: {e}") from e

        out: List[Dict[str, Any]] = []
        for p in res.points or []:
            payload = p.payload or {}
            out.append(
                {
                    "entry_id": payload.get("entry_id") or str(p.id),
                    "title": payload.get("title") or "",
                    "jurisdiction": payload.get("jurisdiction"),
                    "text": payload.get("text") or "",
                    "score": float(p.score or 0.0),
                }
            )
        return out

    def ensure_collection(self, vector_size: int) -> None:
        existing = [c.name for c in self._client.get_collections().collections]
        if self.collection in existing:
            return
        self._client.create_collection(
            collection_name=self.collection,
            vectors_config=VectorParams(size=vector_size, distance=Distance.COSINE),
        )
        logger.info("knowledge_collection_created", extra={"collection": self.collection, "vector_size": vector_size})

    def upsert(self, entries: List[Dict[str, Any]], vectors: List[List[float]]) -> int:
        """Write entries (entry_id, jurisdiction, title, text) with their vectors. Returns the number of points written."""
        points = [
            PointStruct(
                id=stable_point_id(e["entry_id"]),
                vector=v,
                payload={
                    "entry_id": e["entry_id"],
                    "jurisdiction": (e.get("jurisdiction") or "").strip().upper(),
                    "title": e.get("title") or "",
                    "text": e["text"],
                },
            )
            for e, v in zip(entries, vectors)
        ]
        if points:
            self._client.upsert(collection_name=self.collection, points=points)
        return len(points)
