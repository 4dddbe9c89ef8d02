import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from tenantarmor.chat.assembler import last_user_message
from tenantarmor.core.config import Settings, load_settings
from tenantarmor.core.errors import (
    AnalysisNotReady,
    DispatchError,
    JobNotFound,
    StoreUnavailable,
    SubmissionRejected,
)
from tenantarmor.core.services import Services, build_services
from tenantarmor.guardrails.errors import as_http_500
from tenantarmor.guardrails.prompt_injection import detect_prompt_injection
from tenantarmor.guardrails.rate_limit import SimpleRateLimiter
from tenantarmor.jobs.dispatcher import SubmissionRequest
from tenantarmor.jobs.models import DocumentRef, JobStatus
from tenantarmor.jobs.worker import StandaloneWorker
from tenantarmor.models.schemas import (
    ChatRequest,
    JobStatusResponse,
    LimitsResponse,
    SubmitRequest,
    SubmitResponse,
)
from tenantarmor.observability.logging import configure_logging
from tenantarmor.observability.middleware import RequestTimingMiddleware, get_request_id

logger = logging.getLogger(__name__)

APP_TITLE = "TenantArmor Analysis API"

router = APIRouter()


def _services(request: Request) -> Services:
    return request.app.state.services


def _check_rate(request: Request) -> None:
    request.app.state.rate_limiter.check(request)


def _sse(frame: dict) -> str:
    return f"data: {json.dumps(frame, ensure_ascii=False)}\n\n"


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


# -------------------------
# App setup
# -------------------------

def create_app(
    services: Optional[Services] = None,
    settings: Optional[Settings] = None,
    start_worker: Optional[bool] = None,
) -> FastAPI:
    """Build the API. With no arguments, settings come from the environment and real clients are built.
    The in-process worker thread starts only when the queue is in memory (standalone deployment) unless start_worker says otherwise; with Redis, scripts/run_worker.py consumes the queue.
    Run with: uvicorn tenantarmor.main:create_app --factory"""
    settings = settings or (services.settings if services else load_settings())
    configure_logging(settings.log_level)
    services = services or build_services(settings)
    if start_worker is None:
        start_worker = settings.queue_backend == "memory"

    standalone = StandaloneWorker(services.worker) if start_worker else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if standalone:
            standalone.start()
        try:
            yield
        finally:
            if standalone:
                standalone.stop()

    app = FastAPI(title=APP_TITLE, lifespan=lifespan)
    app.state.services = services
    app.state.rate_limiter = SimpleRateLimiter(
        max_requests=settings.rate_limit_requests, window_seconds=settings.rate_limit_window_seconds
    )
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_middleware(RequestTimingMiddleware)
    app.include_router(router)
    return app


# -------------------------
# Root
# -------------------------

@router.get("/")
def root():
    """Returns a minimal welcome payload with app name and docs URL.
    Why available: Gives clients and load balancers a simple root endpoint to confirm the API is running."""
    return {"app": APP_TITLE, "docs": "/docs"}


@router.get("/health")
def health():
    """Returns 200 OK with status. Used by load balancers and probes to check if the API is up."""
    return {"status": "ok"}


# -------------------------
# Limits (for clients)
# -------------------------

@router.get("/limits", response_model=LimitsResponse)
def limits(request: Request):
    """Returns the polling ceiling, document size cap and rate limit.
    Why available: Lets clients poll and submit within server limits without hard-coding them."""
    _check_rate(request)
    s = _services(request).settings
    return LimitsResponse(
        poll_interval_seconds=s.poll_interval_seconds,
        poll_max_attempts=s.poll_max_attempts,
        max_document_chars=s.max_document_chars,
        rate_limit_requests=s.rate_limit_requests,
        rate_limit_window_seconds=s.rate_limit_window_seconds,
    )


# -------------------------
# Submit analysis
# -------------------------

@router.post("/analyses", response_model=SubmitResponse, status_code=202)
def submit_analysis(req: SubmitRequest, request: Request):
    """Validates the submission, writes the QUEUED record and enqueues it for the worker. Returns 202 with the job_id to poll.
    Why available: Entry point of the asynchronous pipeline; analysis takes minutes, so the request never waits for it."""
    _check_rate(request)
    ref = req.document_ref
    submission = SubmissionRequest(
        owner_id=req.owner_id,
        document_class=req.document_class,
        jurisdiction=req.jurisdiction,
        document_ref=DocumentRef(bucket=ref.bucket, key=ref.key, file_name=ref.file_name, media_type=ref.media_type),
        extracted_text=req.extracted_text,
    )
    try:
        job_id = _services(request).dispatcher.submit(submission)
    except SubmissionRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DispatchError:
        raise HTTPException(status_code=503, detail="Analysis service unavailable. Please retry later.")
    except Exception as e:
        raise as_http_500(e)

    # the job exists; polling reports its real status
    try:
        status = _services(request).poller.get(job_id).status.value
    except (StoreUnavailable, JobNotFound) as e:
        logger.warning("submit_status_read_failed", extra={"job_id": job_id, "error": str(e)})
        status = JobStatus.QUEUED.value
    return SubmitResponse(job_id=job_id, status=status)


# -------------------------
# Job Status
# -------------------------

@router.get("/analyses/{job_id}", response_model=JobStatusResponse)
def analysis_status(job_id: str, request: Request):
    """Returns the analysis record as stored: status, and result / error_detail once the job is terminal.
    Why available: Clients poll this after POST /analyses until COMPLETE, PARTIAL_COMPLETE or FAILED."""
    _check_rate(request)
    try:
        job = _services(request).poller.get(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Analysis not found")
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Analysis store unavailable. Please retry.")
    return JobStatusResponse(**job.to_public_dict())


# -------------------------
# Chat (SSE)
# -------------------------

@router.post("/chat")
def chat(req: ChatRequest, request: Request):
    """Streams an answer about a finished analysis as Server-Sent Events: delta frames, then done (or a single error frame).
    Why available: Follow-up questions grounded in the job's result plus general legal knowledge for its jurisdiction."""
    _check_rate(request)
    messages = [m.model_dump() for m in req.messages]
    question = last_user_message(messages)
    if not question:
        raise HTTPException(status_code=400, detail="Last message must be a non-empty user message.")

    hit, _ = detect_prompt_injection(question)
    if hit:
        raise HTTPException(status_code=400, detail="Query contains disallowed content.")

    assembler = _services(request).assembler
    try:
        assembler.load_job(req.job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Analysis not found")
    except AnalysisNotReady as e:
        raise HTTPException(status_code=409, detail=f"Analysis is not ready for chat (status {e.status}).")
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Analysis store unavailable. Please retry.")

    rid = get_request_id(request)

    def _events():
        try:
            for frame in assembler.stream(req.job_id, messages):
                yield _sse(frame)
        except Exception:
            logger.exception("chat_stream_error", extra={"job_id": req.job_id, "request_id": rid})
            yield _sse({"type": "error", "message": "Internal server error"})

    return StreamingResponse(_events(), media_type="text/event-stream")


