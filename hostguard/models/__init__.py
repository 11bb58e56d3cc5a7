"""Data models module - alerts, issues, executions, structured outputs."""

from hostguard.models.alert import (
    AlertSummary,
    ContainerHealth,
    IssueEntry,
    Severity,
    SystemMetrics,
)
from hostguard.models.issue import IssueStatus, TrackedIssue
from hostguard.models.execution import (
    ActionDescriptor,
    ActionRequest,
    BatchResult,
    ExecutionResult,
    ExecutionStatus,
    RiskLevel,
    VerificationResult,
)
from hostguard.models.outputs import (
    AlertSummaryPayload,
    Diagnosis,
    IssueEntryPayload,
    Recommendation,
)

__all__ = [
    # Alerts
    "AlertSummary",
    "ContainerHealth",
    "IssueEntry",
    "Severity",
    "SystemMetrics",
    # Issues
    "IssueStatus",
    "TrackedIssue",
    # Execution
    "ActionDescriptor",
    "ActionRequest",
    "BatchResult",
    "ExecutionResult",
    "ExecutionStatus",
    "RiskLevel",
    "VerificationResult",
    # Structured outputs
    "AlertSummaryPayload",
    "Diagnosis",
    "IssueEntryPayload",
    "Recommendation",
]
