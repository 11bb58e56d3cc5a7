"""Contracts for the collaborators the pipeline talks to."""

from typing import Any, Dict, List, Optional, Protocol

from hostguard.models.alert import AlertSummary, ContainerHealth, SystemMetrics
from hostguard.models.outputs import Diagnosis


class MetricsCollector(Protocol):
    async def collect_metrics(self) -> SystemMetrics: ...

    async def collect_container_health(self) -> ContainerHealth: ...


class AlertFeed(Protocol):
    async def poll_alerts(self) -> List[Dict[str, Any]]: ...


class Analyzer(Protocol):
    async def diagnose(self, summary: AlertSummary, metrics: Optional[SystemMetrics] = None) -> Diagnosis: ...


class IssueTracker(Protocol):
    async def create_or_update_issue(
        self,
        issue_id: str,
        title: str,
        body: str,
        severity: str = "",
        issue_type: str = "",
    ) -> Optional[int]: ...

    async def comment(self, number: int, body: str) -> None: ...

    async def close_issue(self, number: int, comment: str = "") -> None: ...

    async def find_by_issue_id(self, issue_id: str) -> Optional[int]: ...


class Notifier(Protocol):
    async def notify_all(self, message: str, severity: str = "info", title: str = "hostguard") -> int: ...


class AuditSink(Protocol):
    def record(self, action: str, target: str, result: str, details: str = "") -> None: ...


class StatusReporter(Protocol):
    async def report(
        self,
        summary: AlertSummary,
        metrics: Optional[SystemMetrics] = None,
        diagnosis: Optional[Diagnosis] = None,
        trigger: str = "periodic",
        force: bool = False,
    ) -> bool: ...
