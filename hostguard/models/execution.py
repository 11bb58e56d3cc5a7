"""Execution result models for remediation actions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from hostguard.remediation.safety import SafetyDecision


class RiskLevel(str, Enum):
    """Risk level for remediation actions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def __lt__(self, other):
        order = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]
        return order.index(self) < order.index(other)

    def __le__(self, other):
        return self == other or self < other

    def __gt__(self, other):
        return not self <= other

    def __ge__(self, other):
        return not self < other


class ExecutionStatus(str, Enum):
    """Outcome of one remediation invocation."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    REJECTED = "rejected"
    ERROR = "error"
    SKIPPED = "skipped"
    VALIDATION_FAILED = "validation_failed"


class VerificationResult(str, Enum):
    """Outcome of the post-execution check."""
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


# Statuses that count as a successful run in batch totals.
OK_STATUSES = frozenset({ExecutionStatus.SUCCESS, ExecutionStatus.PARTIAL, ExecutionStatus.SKIPPED})


@dataclass(frozen=True)
class ActionRequest:
    """A request to run one named action against one target."""
    action: str
    target: str = ""
    reason: str = ""


@dataclass(frozen=True)
class ActionDescriptor:
    """Registered action with its fixed risk tier."""
    name: str
    description: str
    risk_level: RiskLevel
    auto_executable: bool
    target: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "risk_level": self.risk_level.value,
            "auto_executable": self.auto_executable,
            "target": self.target,
        }


@dataclass
class ExecutionResult:
    """
    Structured result of one remediation invocation.

    ``partial`` means the action's primary step succeeded but its
    post-condition check failed.
    """
    action: str
    target: str = ""
    status: ExecutionStatus = ExecutionStatus.ERROR
    exit_code: Optional[int] = None
    duration_seconds: float = 0.0
    output: str = ""
    verification: VerificationResult = VerificationResult.SKIPPED
    verification_message: str = ""
    risk_level: RiskLevel = RiskLevel.CRITICAL
    message: str = ""
    dry_run: bool = False
    decision: Optional["SafetyDecision"] = None
    started_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def ok(self) -> bool:
        """True when the invocation counts as a success for batch totals."""
        return self.status in OK_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization and audit logging."""
        return {
            "action": self.action,
            "target": self.target,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "duration_seconds": round(self.duration_seconds, 3),
            "output": self.output,
            "verification": {
                "result": self.verification.value,
                "message": self.verification_message,
            },
            "risk_level": self.risk_level.value,
            "message": self.message,
            "dry_run": self.dry_run,
            "safety_check": self.decision.to_dict() if self.decision else None,
            "started_at": self.started_at.isoformat(),
        }


@dataclass
class BatchResult:
    """Aggregated results of a sequential batch."""
    results: List[ExecutionResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return self.total - self.success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }
