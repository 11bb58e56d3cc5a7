"""Host status reports posted as comments on a pinned GitHub issue."""

import time
from pathlib import Path
from typing import Callable, Optional, Union

import structlog

from hostguard.config import GitHubConfig, StatusReportConfig
from hostguard.integrations.github_issues import GitHubIssueTracker
from hostguard.models.alert import AlertSummary, SystemMetrics
from hostguard.models.outputs import Diagnosis


logger = structlog.get_logger()

STATUS_LABEL = "status-report"
STATUS_ISSUE_ID = "status"


def usage_indicator(value: float, warn: float = 80, critical: float = 90) -> str:
    if value >= critical:
        return "critical"
    if value >= warn:
        return "warning"
    return "ok"


def format_status_report(
    summary: AlertSummary,
    metrics: Optional[SystemMetrics] = None,
    diagnosis: Optional[Diagnosis] = None,
    trigger: str = "periodic",
) -> str:
    lines = [
        f"## {summary.hostname or 'host'}: {summary.max_severity.value.upper()}",
        "",
        f"**Reported:** {summary.timestamp.strftime('%Y-%m-%d %H:%M:%S')} UTC ({trigger})",
        f"**Summary:** {summary.summary}",
    ]
    if metrics is not None:
        lines += [
            "",
            "| Metric | Value | State |",
            "|--------|-------|-------|",
            f"| CPU | {metrics.cpu_percent:.1f}% | {usage_indicator(metrics.cpu_percent)} |",
            f"| Memory | {metrics.memory_percent:.1f}% | {usage_indicator(metrics.memory_percent)} |",
            f"| Disk / | {metrics.root_disk_percent:.1f}% | {usage_indicator(metrics.root_disk_percent)} |",
            f"| Load/CPU | {metrics.load_per_cpu:.2f} | {usage_indicator(metrics.load_per_cpu * 50)} |",
        ]
    if diagnosis is not None and summary.issue_count:
        lines += ["", f"**Diagnosis:** {diagnosis.diagnosis}"]
    return "\n".join(lines)


class GitHubStatusReporter:
    """
    Keeps one open status issue and comments a report on it.

    Periodic reports honour ``interval_minutes``; forced reports (sent
    when a cycle found problems) do not.
    """

    def __init__(
        self,
        tracker: GitHubIssueTracker,
        config: StatusReportConfig,
        github: GitHubConfig,
        state_dir: Union[str, Path],
        clock: Callable[[], float] = time.time,
    ):
        self._tracker = tracker
        self._config = config
        self._github = github
        self._marker = Path(state_dir) / "last_status_report"
        self._clock = clock
        self._issue_number: Optional[int] = None

    def due(self) -> bool:
        try:
            last = float(self._marker.read_text().strip())
        except (FileNotFoundError, ValueError):
            return True
        return self._clock() - last >= self._config.interval_minutes * 60

    def _mark(self):
        self._marker.parent.mkdir(parents=True, exist_ok=True)
        self._marker.write_text(f"{int(self._clock())}\n")

    async def _status_issue(self) -> Optional[int]:
        if self._issue_number is None:
            self._issue_number = await self._tracker.find_by_issue_id(STATUS_ISSUE_ID)
        if self._issue_number is None:
            self._issue_number = await self._tracker.create_or_update_issue(
                STATUS_ISSUE_ID,
                self._github.status_issue_title,
                "Host status dashboard. Each report is added as a comment.\n\n"
                "*Managed by hostguard, do not close manually.*",
                issue_type=STATUS_LABEL,
            )
        return self._issue_number

    async def report(
        self,
        summary: AlertSummary,
        metrics: Optional[SystemMetrics] = None,
        diagnosis: Optional[Diagnosis] = None,
        trigger: str = "periodic",
        force: bool = False,
    ) -> bool:
        """Post a report. Returns False when skipped because of the interval."""
        if not force and not self.due():
            logger.debug("Status report not due")
            return False

        number = await self._status_issue()
        if number is None:
            return False
        await self._tracker.comment(number, format_status_report(summary, metrics, diagnosis, trigger))
        self._mark()
        logger.info("Status report posted", issue=number, trigger=trigger)
        return True
