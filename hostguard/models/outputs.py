"""Structured models validated at the process boundary.

Diagnoses coming back from the analyzer and alert summaries posted to
the HTTP API are parsed into these pydantic models before they reach
the pipeline.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hostguard.models.alert import AlertSummary, IssueEntry, Severity
from hostguard.models.execution import ActionRequest


class Recommendation(BaseModel):
    """One remediation suggested by an analyzer."""

    model_config = ConfigDict(extra="ignore")

    action: str = Field(description="Registered action name")
    description: str = Field(default="", description="Why this helps")
    risk_level: str = Field(default="high", description="low, medium, high or critical")
    auto_executable: bool = Field(default=False)
    target: Optional[str] = Field(default=None, description="Container, service or PID")
    command: Optional[str] = Field(
        default=None,
        description="Informational only; never executed directly",
    )

    @field_validator("risk_level", mode="before")
    @classmethod
    def _lower_risk(cls, value):
        return str(value or "high").lower()

    @field_validator("target", mode="before")
    @classmethod
    def _target_str(cls, value):
        return None if value in (None, "") else str(value)

    @property
    def is_auto_executable(self) -> bool:
        return self.risk_level == "low" and self.auto_executable


class Diagnosis(BaseModel):
    """Diagnosis of an alert summary, AI-backed or rule-based."""

    model_config = ConfigDict(extra="ignore")

    severity: str = "unknown"
    diagnosis: str = ""
    root_cause: str = ""
    recommendations: List[Recommendation] = Field(default_factory=list)
    requires_human: bool = False
    urgency: str = "can_wait"
    analysis_method: Literal["ai", "rule_based"] = "ai"
    parse_error: bool = False
    raw_response: Optional[str] = None

    def auto_actions(self) -> List[ActionRequest]:
        """Low-risk, auto-executable recommendations as action requests."""
        return [
            ActionRequest(action=r.action, target=r.target or "", reason=r.description)
            for r in self.recommendations
            if r.is_auto_executable
        ]


class IssueEntryPayload(BaseModel):
    """Wire form of one issue entry."""

    model_config = ConfigDict(extra="ignore")

    type: str
    severity: Severity = Severity.MINOR
    metric: Optional[str] = None
    container: Optional[str] = None
    alert_type: Optional[str] = None
    current: Optional[float] = None
    threshold: Optional[float] = None
    reason: Optional[str] = None
    message: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _parse_severity(cls, value):
        return Severity.parse(value)


class AlertSummaryPayload(BaseModel):
    """Canonical alert summary accepted over HTTP."""

    timestamp: Optional[datetime] = None
    hostname: str = ""
    issue_count: Optional[int] = Field(default=None, ge=0)
    max_severity: Optional[Severity] = None
    summary: str = ""
    issues: List[IssueEntryPayload] = Field(default_factory=list)

    def to_summary(self) -> AlertSummary:
        entries = [IssueEntry(**entry.model_dump()) for entry in self.issues]
        built = AlertSummary.from_issues(entries, hostname=self.hostname, timestamp=self.timestamp)
        return AlertSummary(
            hostname=built.hostname,
            timestamp=built.timestamp,
            issue_count=self.issue_count if self.issue_count is not None else built.issue_count,
            max_severity=self.max_severity or built.max_severity,
            summary=self.summary or built.summary,
            issues=built.issues,
        )
