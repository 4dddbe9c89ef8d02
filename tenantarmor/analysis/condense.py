from typing import Any, Dict, List

from tenantarmor.jobs.models import DocumentClass
from tenantarmor.utils.text import truncate_text


def _lines(label: str, items: List[str]) -> List[str]:
    if not items:
        return []
    return [f"{label}:"] + [f"- {x}" for x in items if x]


def _high_issues(analysis: Dict[str, Any]) -> List[str]:
    out = []
    for clause in analysis.get("clauses") or []:
        for issue in clause.get("issues") or []:
            if issue.get("severity") == "High" and issue.get("description"):
                out.append(issue["description"])
    return out


def build_insights_context(analysis: Dict[str, Any], document_class: DocumentClass, max_chars: int) -> str:
    """Condense phase-2 output into the actionable-insights prompt context.
    Leases carry summary, overall severity and high-severity issue descriptions; eviction notices carry summary, notice type, deadline, urgency, violations and defenses.
    The summary gets at most half of max_chars so the issues still fit; the whole context is capped at max_chars."""
    summary = truncate_text(analysis.get("summary") or "N/A", max_chars // 2)
    parts: List[str] = [f"Summary: {summary}"]
    if document_class == DocumentClass.EVICTION_NOTICE:
        parts.append(f"Notice type: {analysis.get('noticeType') or 'N/A'}")
        parts.append(f"Deadline: {analysis.get('deadline') or 'not stated'}")
        if analysis.get("amountDue"):
            parts.append(f"Amount due: {analysis['amountDue']}")
        parts.append(f"Urgency: {analysis.get('urgency') or 'N/A'}")
        parts += _lines("Possible violations", analysis.get("violations") or [])
        parts += _lines("Possible defenses", analysis.get("defenses") or [])
    else:
        parts.append(f"Overall severity: {analysis.get('overallSeverity') or 'N/A'}")
        parts += _lines("High severity issues", _high_issues(analysis))
    return truncate_text("\n".join(parts), max_chars)
