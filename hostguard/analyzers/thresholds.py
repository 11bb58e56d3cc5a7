"""Threshold checks and alert summary assembly."""

from typing import Any, Dict, Iterable, List, Optional

from hostguard.config import ThresholdConfig
from hostguard.models.alert import AlertSummary, ContainerHealth, IssueEntry, Severity, SystemMetrics

# External alert severity -> internal severity
FEED_SEVERITY = {
    "critical": Severity.CRITICAL,
    "major": Severity.WARNING,
}


def severity_for(current: float, threshold: float) -> Severity:
    """
    Severity of a breach by how far it exceeds the threshold.

    More than 50% over is critical, more than 25% is a warning,
    anything else is minor. Values at or under the threshold are ok.
    """
    if current <= threshold:
        return Severity.OK
    exceed_percent = int((current - threshold) * 100 / threshold)
    if exceed_percent > 50:
        return Severity.CRITICAL
    if exceed_percent > 25:
        return Severity.WARNING
    return Severity.MINOR


def _breach(metric: str, current: float, threshold: float) -> Optional[IssueEntry]:
    severity = severity_for(current, threshold)
    if severity == Severity.OK:
        return None
    return IssueEntry(
        type="threshold",
        metric=metric,
        current=round(current, 2),
        threshold=threshold,
        severity=severity,
    )


def check_thresholds(metrics: SystemMetrics, thresholds: ThresholdConfig) -> List[IssueEntry]:
    """Threshold breaches for cpu, memory, every disk and load per cpu."""
    candidates = [
        _breach("cpu", metrics.cpu_percent, thresholds.cpu),
        _breach("memory", metrics.memory_percent, thresholds.memory),
    ]
    for mount, usage in sorted(metrics.disks.items()):
        candidates.append(_breach(f"disk:{mount}", usage, thresholds.disk))
    candidates.append(_breach("load_per_cpu", round(metrics.load_per_cpu, 2), thresholds.load_per_cpu))
    return [c for c in candidates if c is not None]


def container_issues(health: Optional[ContainerHealth]) -> List[IssueEntry]:
    if health is None:
        return []
    return [
        IssueEntry(
            type="docker",
            container=item.get("name", "unknown"),
            reason=item.get("reason", "unknown"),
            severity=Severity.WARNING,
        )
        for item in health.unhealthy
    ]


def feed_issues(alerts: Iterable[Dict[str, Any]]) -> List[IssueEntry]:
    """Issue entries for external feed alerts."""
    entries = []
    for alert in alerts:
        alert_type = alert.get("type") or alert.get("alert_type") or "unknown"
        entries.append(
            IssueEntry(
                type="feed",
                alert_type=str(alert_type),
                message=alert.get("message") or alert.get("label") or "",
                severity=FEED_SEVERITY.get(str(alert.get("severity", "")).lower(), Severity.MINOR),
            )
        )
    return entries


def build_alert_summary(
    metrics: Optional[SystemMetrics] = None,
    thresholds: Optional[ThresholdConfig] = None,
    containers: Optional[ContainerHealth] = None,
    alerts: Iterable[Dict[str, Any]] = (),
    hostname: str = "",
) -> AlertSummary:
    """Merge threshold breaches, container problems and feed alerts into one summary."""
    issues: List[IssueEntry] = []
    if metrics is not None:
        issues.extend(check_thresholds(metrics, thresholds or ThresholdConfig()))
        hostname = hostname or metrics.hostname
    issues.extend(container_issues(containers))
    issues.extend(feed_issues(alerts))
    return AlertSummary.from_issues(issues, hostname=hostname)
