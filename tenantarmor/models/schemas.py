from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any


class DocumentRefModel(BaseModel):
    """Where the uploaded document lives. Why available: The pipeline never touches the blob, but the record keeps the pointer and file name for display and chat."""

    bucket: str = Field(..., description="Blob storage bucket")
    key: str = Field(..., min_length=1, description="Object key of the uploaded file")
    file_name: str = Field(..., min_length=1, description="Original file name shown to the user")
    media_type: str = Field("application/pdf", description="MIME type of the upload")


class SubmitRequest(BaseModel):
    """Request body for POST /analyses. Why available: Carries the already-extracted text plus the identity and document fields fixed at dispatch."""

    owner_id: str = Field(..., description="Authenticated user that owns the job")
    document_class: str = Field(..., description="LEASE or EVICTION_NOTICE")
    jurisdiction: str = Field(..., description="State/jurisdiction code, e.g. CA")
    document_ref: DocumentRefModel
    extracted_text: str = Field(..., description="Text extracted from the upload (OCR is out of scope)")


class SubmitResponse(BaseModel):
    job_id: str
    status: str


class JobStatusResponse(BaseModel):
    """Response for GET /analyses/{job_id}: the record as stored. Why available: Clients poll this until status is COMPLETE, PARTIAL_COMPLETE or FAILED."""

    job_id: str
    owner_id: str
    document_ref: DocumentRefModel
    jurisdiction: str
    document_class: str
    status: str
    result: Optional[Dict[str, Any]] = None
    error_detail: Optional[str] = None
    created_at: float
    updated_at: float


class ChatMessage(BaseModel):
    role: str = Field(..., description="user or assistant")
    content: str = ""


class ChatRequest(BaseModel):
    """Request body for POST /chat. Why available: Chat history for one analysed document; the last message is the new question."""

    job_id: str
    messages: List[ChatMessage] = Field(..., min_length=1)


class LimitsResponse(BaseModel):
    """Response for GET /limits: polling ceiling, document size cap, rate limit. Why available: Lets clients poll and submit within server limits instead of hard-coding them."""

    poll_interval_seconds: int = Field(..., description="Suggested delay between status polls")
    poll_max_attempts: int = Field(..., description="Polls before a client should give up waiting")
    max_document_chars: int = Field(..., description="Extracted text beyond this length is cut before analysis")
    rate_limit_requests: int = Field(..., description="Rate limit requests per window")
    rate_limit_window_seconds: int = Field(..., description="Rate limit window in seconds")
