from typing import Any, Dict, List

from tenantarmor.jobs.models import AnalysisJob, DocumentClass
from tenantarmor.utils.text import truncate_text

SUMMARY_MAX_CHARS = 500
RECOMMENDATION_MAX_CHARS = 300
MAX_DIGEST_CLAUSES = 5
ISSUE_MAX_CHARS = 50


def _clause_line(clause: Dict[str, Any]) -> str:
    title = clause.get("title") or "Untitled clause"
    issues = [truncate_text(i.get("description", ""), ISSUE_MAX_CHARS) for i in clause.get("issues") or []]
    issues = [i for i in issues if i]
    if not issues:
        return title
    return f"{title} (Issues: {'; '.join(issues)})"


def _lease_details(result: Dict[str, Any]) -> List[str]:
    clauses = [_clause_line(c) for c in (result.get("clauses") or [])[:MAX_DIGEST_CLAUSES]]
    return [f"Key Clauses/Issues mentioned in analysis: {', '.join(clauses) or 'None specified'}"]


def _eviction_details(result: Dict[str, Any]) -> List[str]:
    lines = [
        f"Notice Type: {result.get('noticeType') or 'N/A'}",
        f"Response Deadline: {result.get('deadline') or 'not stated'}",
    ]
    if result.get("amountDue"):
        lines.append(f"Amount Due: {result['amountDue']}")
    lines.append(f"Possible Violations: {'; '.join(result.get('violations') or []) or 'None identified'}")
    lines.append(f"Possible Defenses: {'; '.join(result.get('defenses') or []) or 'None identified'}")
    return lines


def build_job_digest(job: AnalysisJob, max_chars: int) -> str:
    """Compact text view of a finished analysis for the chat prompt.
    Same record always yields the same digest; the result must be present (COMPLETE or PARTIAL_COMPLETE)."""
    result = job.result or {}
    eviction = job.document_class == DocumentClass.EVICTION_NOTICE
    recommendation = (result.get("actionableInsights") or {}).get("overallRecommendation")
    severity = result.get("urgency") if eviction else result.get("overallSeverity")

    lines = [
        f"{'Eviction Notice' if eviction else 'Lease'} Analysis Summary for document '{job.document_ref.file_name}':",
        f"Jurisdiction: {job.jurisdiction}",
        f"{'Urgency' if eviction else 'Overall Severity'}: {severity or 'N/A'}",
        f"Summary: {truncate_text(result.get('summary') or 'N/A', SUMMARY_MAX_CHARS)}",
        "Actionable Insights: "
        + (truncate_text(recommendation, RECOMMENDATION_MAX_CHARS) if recommendation else "not available"),
    ]
    lines += _eviction_details(result) if eviction else _lease_details(result)
    return truncate_text("\n".join(lines), max_chars)
