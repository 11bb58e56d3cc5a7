"""Alert data models: metrics snapshots and normalized alert summaries."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


class Severity(str, Enum):
    """Alert severity, ordered ok < minor < warning < critical."""
    OK = "ok"
    MINOR = "minor"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def parse(cls, value: Any, default: "Severity" = None) -> "Severity":
        """Parse a severity string, falling back to *default* (minor)."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return default or cls.MINOR

    def __lt__(self, other):
        return self.rank < other.rank

    def __le__(self, other):
        return self.rank <= other.rank

    def __gt__(self, other):
        return self.rank > other.rank

    def __ge__(self, other):
        return self.rank >= other.rank


_SEVERITY_ORDER = [Severity.OK, Severity.MINOR, Severity.WARNING, Severity.CRITICAL]


@dataclass(frozen=True)
class IssueEntry:
    """
    One detected problem inside an alert summary.

    Threshold breaches carry ``metric``/``current``/``threshold``,
    container problems carry ``container``/``reason`` and external
    alerts carry ``alert_type``/``message``.
    """
    type: str
    severity: Severity = Severity.MINOR
    metric: Optional[str] = None
    container: Optional[str] = None
    alert_type: Optional[str] = None
    current: Optional[float] = None
    threshold: Optional[float] = None
    reason: Optional[str] = None
    message: Optional[str] = None

    @property
    def subject(self) -> str:
        """The thing this entry is about: metric, container or alert type."""
        return self.metric or self.container or self.alert_type or "unknown"

    def describe(self) -> str:
        """Short human-readable description."""
        if self.current is not None and self.threshold is not None:
            return f"{self.subject} at {self.current:g} (threshold {self.threshold:g})"
        detail = self.reason or self.message
        return f"{self.subject}: {detail}" if detail else self.subject

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IssueEntry":
        return cls(
            type=str(data.get("type") or "unknown"),
            severity=Severity.parse(data.get("severity")),
            metric=data.get("metric"),
            container=data.get("container"),
            alert_type=data.get("alert_type"),
            current=_as_float(data.get("current")),
            threshold=_as_float(data.get("threshold")),
            reason=data.get("reason"),
            message=data.get("message"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type, "severity": self.severity.value}
        for key in ("metric", "container", "alert_type", "current", "threshold", "reason", "message"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class AlertSummary:
    """Normalized, severity-ranked list of problems for one evaluation cycle."""
    hostname: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)
    issue_count: int = 0
    max_severity: Severity = Severity.OK
    summary: str = "all metrics normal"
    issues: Tuple[IssueEntry, ...] = ()

    @classmethod
    def from_issues(
        cls,
        issues: Sequence[IssueEntry],
        hostname: str = "",
        timestamp: Optional[datetime] = None,
    ) -> "AlertSummary":
        """Build a summary, deriving count, max severity and summary text."""
        issues = tuple(issues)
        max_severity = max((i.severity for i in issues), default=Severity.OK)
        if issues:
            text = f"{len(issues)} issue(s) detected: " + "; ".join(i.describe() for i in issues)
        else:
            text = "all metrics normal"
        return cls(
            hostname=hostname,
            timestamp=timestamp or datetime.utcnow(),
            issue_count=len(issues),
            max_severity=max_severity,
            summary=text,
            issues=issues,
        )

    @classmethod
    def empty(cls, hostname: str = "") -> "AlertSummary":
        return cls.from_issues([], hostname=hostname)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlertSummary":
        """Create from the canonical wire shape."""
        issues = tuple(IssueEntry.from_dict(i) for i in data.get("issues") or [])
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return cls(
            hostname=data.get("hostname", ""),
            timestamp=timestamp or datetime.utcnow(),
            issue_count=int(data.get("issue_count", len(issues))),
            max_severity=Severity.parse(
                data.get("max_severity"),
                default=max((i.severity for i in issues), default=Severity.OK),
            ),
            summary=data.get("summary") or "",
            issues=issues,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "hostname": self.hostname,
            "issue_count": self.issue_count,
            "max_severity": self.max_severity.value,
            "summary": self.summary,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass
class SystemMetrics:
    """Point-in-time resource usage of the host."""
    hostname: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    memory_available_percent: float = 100.0
    disks: Dict[str, float] = field(default_factory=dict)  # mountpoint -> used percent
    load_1m: float = 0.0
    load_5m: float = 0.0
    load_15m: float = 0.0
    cpu_count: int = 1

    @property
    def load_per_cpu(self) -> float:
        return self.load_1m / max(self.cpu_count, 1)

    @property
    def root_disk_percent(self) -> float:
        return self.disks.get("/", 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hostname": self.hostname,
            "timestamp": self.timestamp.isoformat(),
            "cpu_percent": self.cpu_percent,
            "memory_percent": self.memory_percent,
            "memory_available_percent": self.memory_available_percent,
            "disks": dict(self.disks),
            "load": [self.load_1m, self.load_5m, self.load_15m],
            "load_per_cpu": round(self.load_per_cpu, 2),
            "cpu_count": self.cpu_count,
        }


@dataclass
class ContainerHealth:
    """Containers that are stopped, unhealthy or over their resource budget."""
    unhealthy: List[Dict[str, str]] = field(default_factory=list)  # {"name", "reason"}


def _as_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
