"""
Schemas for the language model's structured output.

Severity and importance are closed sets: a value outside them fails validation
and the worker treats the response as malformed (no coercion).
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Importance(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    CONSIDER = "Consider"


class _Strict(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Issue(_Strict):
    description: str = Field(..., min_length=1)
    severity: Severity
    recommendation: str = ""


class Clause(_Strict):
    title: str = Field(..., min_length=1)
    text: str = ""
    issues: List[Issue] = Field(default_factory=list)


class LeaseAnalysis(_Strict):
    """Phase-2 output for a lease: summary, overall severity, and extracted clauses with issues."""

    summary: str = Field(..., min_length=1)
    overall_severity: Severity = Field(..., alias="overallSeverity")
    clauses: List[Clause] = Field(default_factory=list)

    def high_severity_issues(self) -> List[str]:
        return [i.description for c in self.clauses for i in c.issues if i.severity == Severity.HIGH]


class KeyDate(_Strict):
    date: str
    description: str = ""
    type: str = ""


class EvictionAnalysis(_Strict):
    """Phase-2 output for an eviction notice: notice type, deadline, possible violations and defenses."""

    summary: str = Field(..., min_length=1)
    notice_type: str = Field(..., alias="noticeType", min_length=1)
    deadline: Optional[str] = None
    amount_due: Optional[str] = Field(None, alias="amountDue")
    property_address: Optional[str] = Field(None, alias="propertyAddress")
    landlord_name: Optional[str] = Field(None, alias="landlordName")
    urgency: Severity
    violations: List[str] = Field(default_factory=list)
    defenses: List[str] = Field(default_factory=list)
    key_dates: List[KeyDate] = Field(default_factory=list, alias="keyDates")


class NextStep(_Strict):
    step: str = Field(..., min_length=1)
    importance: Importance
    details: Optional[str] = None


class ActionableInsights(_Strict):
    overall_recommendation: str = Field(..., alias="overallRecommendation", min_length=1)
    next_steps: List[NextStep] = Field(..., alias="nextSteps", min_length=1)


class InsightsEnvelope(_Strict):
    """Phase-3 output: {"actionableInsights": {...}}."""

    actionable_insights: ActionableInsights = Field(..., alias="actionableInsights")


def dump(model: BaseModel) -> dict:
    """JSON-ready dict with the camelCase keys clients read (summary, overallSeverity, clauses, actionableInsights)."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)
