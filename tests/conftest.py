import sys
from pathlib import Path
import json
import pytest

# Ensure repo root is on sys.path so `import tenantarmor...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tenantarmor.core.config import Settings  # noqa: E402
from tenantarmor.core.errors import EmbeddingError, KnowledgeSearchError, LanguageModelError  # noqa: E402
from tenantarmor.jobs import state  # noqa: E402
from tenantarmor.jobs.models import (  # noqa: E402
    AnalysisJob,
    DispatchMessage,
    DocumentClass,
    DocumentRef,
    JobStatus,
)
from tenantarmor.jobs.store import InMemoryRecordStore  # noqa: E402


def pretty_json(obj) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """
    Attach request/response payloads into pytest-html report.

    In tests, store payloads like:
      request_log = {"method": "...", "url": "...", "json": {...}}
      response_log = {"status_code": 200, "json": {...}}
      item._api_logs = [{"title": "...", "request": ..., "response": ...}, ...]
    """
    outcome = yield
    rep = outcome.get_result()

    if rep.when != "call":
        return

    api_logs = getattr(item, "_api_logs", None)
    if not api_logs:
        return

    # Only attach if pytest-html is installed/enabled
    extras = getattr(rep, "extras", [])

    try:
        from pytest_html import extras as html_extras
    except ImportError:
        rep.extras = extras
        return

    for entry in api_logs:
        title = entry.get("title", "API Call")
        req = entry.get("request", {})
        res = entry.get("response", {})

        html = f"""
        <div style="font-family: ui-monospace, SFMono-Regular, Menlo, Monaco, Consolas, 'Liberation Mono', monospace;">
          <h4 style="margin:8px 0;">{title}</h4>

          <details style="margin:6px 0;">
            <summary><b>Request</b></summary>
            <pre style="background:#0b1020;color:#cfe3ff;padding:10px;border-radius:8px;overflow:auto;">{pretty_json(req)}</pre>
          </details>

          <details style="margin:6px 0;">
            <summary><b>Response</b></summary>
            <pre style="background:#0b1020;color:#cfe3ff;padding:10px;border-radius:8px;overflow:auto;">{pretty_json(res)}</pre>
          </details>
        </div>
        """
        extras.append(html_extras.html(html))

    rep.extras = extras


# -------------------------
# Sample model output
# -------------------------

LEASE_ANALYSIS = {
    "summary": "Twelve-month residential lease with a strict late fee and a broad entry clause.",
    "overallSeverity": "Medium",
    "clauses": [
        {
            "title": "Rent Payment Terms",
            "text": "Rent of $2,000 is due on the 1st of each month.",
            "issues": [],
        },
        {
            "title": "Late Fees",
            "text": "A late fee of $200 applies after the 2nd.",
            "issues": [
                {
                    "description": "Late fee may exceed what is considered reasonable for this jurisdiction",
                    "severity": "High",
                    "recommendation": "Ask the landlord to reduce the late fee or extend the grace period.",
                }
            ],
        },
        {
            "title": "Landlord Entry",
            "text": "Landlord may enter at any time.",
            "issues": [
                {
                    "description": "No advance notice required before entry",
                    "severity": "Medium",
                    "recommendation": "Request a 24-hour written notice requirement.",
                }
            ],
        },
    ],
}

EVICTION_ANALYSIS = {
    "summary": "Three-day notice to pay rent or quit for $1,800 in unpaid rent.",
    "noticeType": "Non-Payment of Rent",
    "deadline": "2025-03-04",
    "amountDue": "$1,800",
    "propertyAddress": "12 Elm St, Oakland, CA",
    "landlordName": "Elm Properties LLC",
    "urgency": "High",
    "violations": ["Notice does not state how rent may be paid"],
    "defenses": ["Defective notice", "Rent paid in part and accepted"],
    "keyDates": [{"date": "2025-03-04", "description": "Pay or quit deadline", "type": "deadline"}],
}

INSIGHTS = {
    "actionableInsights": {
        "overallRecommendation": "Negotiate the late fee before signing.",
        "nextSteps": [
            {"step": "Ask for a lower late fee", "importance": "High", "details": "Cite local norms."},
            {"step": "Request written entry notice terms", "importance": "Consider"},
        ],
    }
}


# -------------------------
# Fakes
# -------------------------

class FakeLanguageModel:
    """Scripted stand-in for OpenAILanguageModel. json_responses are consumed in order; an Exception entry is raised instead of returned."""

    def __init__(self, json_responses=None, deltas=("You ", "may ", "negotiate."), embed_error=None, stream_error=None):
        self.json_responses = list(json_responses or [])
        self.json_calls = []
        self.deltas = list(deltas)
        self.embed_error = embed_error
        self.stream_error = stream_error
        self.embed_calls = []
        self.stream_calls = []

    def complete_json(self, system, user, temperature=0.2):
        self.json_calls.append({"system": system, "user": user, "temperature": temperature})
        if not self.json_responses:
            raise LanguageModelError("no scripted response left", kind="provider")
        r = self.json_responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return json.loads(json.dumps(r))

    def embed(self, text):
        self.embed_calls.append(text)
        if self.embed_error:
            raise self.embed_error
        return [0.1, 0.2, 0.3]

    def stream_chat(self, system, messages, temperature=0.5):
        self.stream_calls.append({"system": system, "messages": messages, "temperature": temperature})
        for i, d in enumerate(self.deltas):
            if self.stream_error is not None and i == 1:
                raise self.stream_error
            yield d


class FakeKnowledgeIndex:
    def __init__(self, entries=None, error=None):
        self.entries = list(entries or [])
        self.error = error
        self.calls = []

    def search(self, vector, jurisdiction, top_k):
        self.calls.append({"vector": vector, "jurisdiction": jurisdiction, "top_k": top_k})
        if self.error:
            raise self.error
        return [e for e in self.entries if e.get("jurisdiction") == jurisdiction][:top_k]


class CountingStore(InMemoryRecordStore):
    """In-memory store that records every write and the sequence of statuses it moved through."""

    def __init__(self):
        super().__init__()
        self.writes = 0
        self.history = []

    def create(self, job):
        super().create(job)
        self.writes += 1
        self.history.append(job.status)

    def transition(self, job_id, expected, new_job):
        super().transition(job_id, expected, new_job)
        self.writes += 1
        self.history.append(new_job.status)


# -------------------------
# Builders
# -------------------------

DOC_REF = DocumentRef(bucket="uploads", key="leases/u1/lease.pdf", file_name="lease.pdf")


def make_job(
    status=JobStatus.QUEUED,
    job_id="job-1",
    document_class=DocumentClass.LEASE,
    checkpoint=None,
    result=None,
    error_detail=None,
    jurisdiction="CA",
) -> AnalysisJob:
    """Build a record already in `status` by walking the allowed transitions."""
    job = AnalysisJob(
        job_id=job_id,
        owner_id="user-1",
        document_ref=DOC_REF,
        jurisdiction=jurisdiction,
        document_class=document_class,
        status=JobStatus.QUEUED,
        created_at=1000.0,
        updated_at=1000.0,
    )
    path = {
        JobStatus.QUEUED: [],
        JobStatus.EXTRACTING: [JobStatus.EXTRACTING],
        JobStatus.ANALYZING: [JobStatus.EXTRACTING, JobStatus.ANALYZING],
        JobStatus.INSIGHTS_PENDING: [JobStatus.EXTRACTING, JobStatus.ANALYZING, JobStatus.INSIGHTS_PENDING],
        JobStatus.COMPLETE: [JobStatus.EXTRACTING, JobStatus.ANALYZING, JobStatus.INSIGHTS_PENDING, JobStatus.COMPLETE],
        JobStatus.PARTIAL_COMPLETE: [
            JobStatus.EXTRACTING, JobStatus.ANALYZING, JobStatus.INSIGHTS_PENDING, JobStatus.PARTIAL_COMPLETE,
        ],
        JobStatus.FAILED: [JobStatus.EXTRACTING, JobStatus.FAILED],
    }[status]
    analysis = checkpoint or (EVICTION_ANALYSIS if document_class == DocumentClass.EVICTION_NOTICE else LEASE_ANALYSIS)
    for i, target in enumerate(path, start=1):
        job = state.transition(
            job,
            target,
            result=result or {**analysis, **INSIGHTS},
            error_detail=error_detail or "structured analysis failed: test",
            checkpoint=analysis,
            now=1000.0 + i,
        )
    return job


def make_message(job: AnalysisJob, text="This lease is made between the landlord and the tenant.") -> DispatchMessage:
    return DispatchMessage(
        job_id=job.job_id,
        extracted_text=text,
        jurisdiction=job.jurisdiction,
        document_class=job.document_class,
        owner_id=job.owner_id,
        file_name=job.document_ref.file_name,
    )


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="test-key",
        store_backend="memory",
        queue_backend="memory",
        max_document_chars=120000,
        insights_context_chars=3500,
        chat_context_chars=4000,
        knowledge_entry_max_chars=500,
        knowledge_top_k=3,
        poll_interval_seconds=5,
        poll_max_attempts=360,
        rate_limit_requests=100,
        rate_limit_window_seconds=60,
        prompt_version="v1",
    )


@pytest.fixture
def store():
    return CountingStore()
