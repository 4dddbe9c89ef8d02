"""Analysis job record and queue message: one record per job_id, status-driven lifecycle (see jobs/state.py)."""
import json
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    EXTRACTING = "EXTRACTING"
    ANALYZING = "ANALYZING"
    INSIGHTS_PENDING = "INSIGHTS_PENDING"
    COMPLETE = "COMPLETE"
    PARTIAL_COMPLETE = "PARTIAL_COMPLETE"
    FAILED = "FAILED"


class DocumentClass(str, Enum):
    LEASE = "LEASE"
    EVICTION_NOTICE = "EVICTION_NOTICE"


@dataclass(frozen=True)
class DocumentRef:
    """Pointer to the uploaded blob (bucket/key) plus the original file name and media type."""

    bucket: str
    key: str
    file_name: str
    media_type: str = "application/pdf"


@dataclass(frozen=True)
class AnalysisJob:
    """A single analysis job: identity and document fields are fixed at dispatch; status, result, error_detail and checkpoint change only through jobs.state.transition.
    Why available: Shared record shape for the dispatcher (creates), the worker (advances), and the poller / chat assembler (read only)."""

    job_id: str
    owner_id: str
    document_ref: DocumentRef
    jurisdiction: str
    document_class: DocumentClass
    status: JobStatus
    created_at: float
    updated_at: float
    result: Optional[Dict[str, Any]] = None
    error_detail: Optional[str] = None
    # phase-2 output kept while insights run; not part of the public record
    checkpoint: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["document_class"] = self.document_class.value
        return data

    def to_public_dict(self) -> Dict[str, Any]:
        data = self.to_dict()
        data.pop("checkpoint", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisJob":
        return cls(
            job_id=data["job_id"],
            owner_id=data["owner_id"],
            document_ref=DocumentRef(**data["document_ref"]),
            jurisdiction=data["jurisdiction"],
            document_class=DocumentClass(data["document_class"]),
            status=JobStatus(data["status"]),
            created_at=float(data["created_at"]),
            updated_at=float(data["updated_at"]),
            result=data.get("result"),
            error_detail=data.get("error_detail"),
            checkpoint=data.get("checkpoint"),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "AnalysisJob":
        return cls.from_dict(json.loads(raw))


@dataclass(frozen=True)
class DispatchMessage:
    """Queue payload: carries everything the worker needs so it never re-reads the submission."""

    job_id: str
    extracted_text: str
    jurisdiction: str
    document_class: DocumentClass
    owner_id: str
    file_name: str = ""

    def to_json(self) -> str:
        data = asdict(self)
        data["document_class"] = self.document_class.value
        return json.dumps(data, ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "DispatchMessage":
        data = json.loads(raw)
        return cls(
            job_id=data["job_id"],
            extracted_text=data.get("extracted_text") or "",
            jurisdiction=data["jurisdiction"],
            document_class=DocumentClass(data["document_class"]),
            owner_id=data["owner_id"],
            file_name=data.get("file_name") or "",
        )
