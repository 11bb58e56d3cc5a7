"""
Pipeline orchestrator.

Turns one normalized alert summary into issue-state transitions,
at most one remediation attempt per suggested action, and a
notification. An empty summary instead advances the normal counters
of open issues and closes those that stayed clean long enough.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from hostguard.analyzers.rules import rule_based_diagnosis, suggested_actions
from hostguard.config import Settings
from hostguard.errors import HostguardError
from hostguard.interfaces import Analyzer, AuditSink, IssueTracker, Notifier, StatusReporter
from hostguard.integrations.github_issues import format_issue_body, format_update_comment
from hostguard.models.alert import AlertSummary, IssueEntry, Severity, SystemMetrics
from hostguard.models.execution import ActionRequest, ExecutionResult, ExecutionStatus
from hostguard.models.issue import IssueStatus
from hostguard.models.outputs import Diagnosis
from hostguard.remediation.executor import RemediationExecutor
from hostguard.state.cooldowns import CooldownStore
from hostguard.state.issues import IssueStore, issue_key


logger = structlog.get_logger()

# Alert severity -> notification severity
NOTIFY_SEVERITY = {
    Severity.CRITICAL: "error",
    Severity.WARNING: "warning",
    Severity.MINOR: "info",
}


@dataclass
class PipelineResult:
    """What one pipeline cycle did (or, in dry-run, would have done)."""
    source: str
    dry_run: bool = False
    issue_count: int = 0
    max_severity: Severity = Severity.OK
    diagnosis: Optional[Diagnosis] = None
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    closed: List[str] = field(default_factory=list)
    executions: List[ExecutionResult] = field(default_factory=list)
    cooling_down: List[str] = field(default_factory=list)
    notified: bool = False
    notification_errors: int = 0
    status_reported: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "dry_run": self.dry_run,
            "issue_count": self.issue_count,
            "max_severity": self.max_severity.value,
            "diagnosis": self.diagnosis.model_dump() if self.diagnosis else None,
            "created": self.created,
            "updated": self.updated,
            "closed": self.closed,
            "executions": [e.to_dict() for e in self.executions],
            "cooling_down": self.cooling_down,
            "notified": self.notified,
            "notification_errors": self.notification_errors,
            "status_reported": self.status_reported,
        }


class Pipeline:
    """
    Single entry point for a detection cycle.

    Within one cycle, issue-state updates happen before remediation
    and remediation before notification.
    """

    def __init__(
        self,
        settings: Settings,
        issues: IssueStore,
        cooldowns: CooldownStore,
        executor: RemediationExecutor,
        analyzer: Optional[Analyzer] = None,
        tracker: Optional[IssueTracker] = None,
        notifier: Optional[Notifier] = None,
        audit: Optional[AuditSink] = None,
        status_reporter: Optional[StatusReporter] = None,
    ):
        self._settings = settings
        self._config = settings.pipeline
        self._issues = issues
        self._cooldowns = cooldowns
        self._executor = executor
        self._analyzer = analyzer
        self._tracker = tracker
        self._notifier = notifier
        self._audit = audit
        self._status_reporter = status_reporter

    @property
    def dry_run(self) -> bool:
        return self._config.dry_run

    async def process(
        self,
        summary: AlertSummary,
        metrics: Optional[SystemMetrics] = None,
        source: str = "periodic",
    ) -> PipelineResult:
        """Run one cycle for *summary* reported by *source*."""
        result = PipelineResult(
            source=source,
            dry_run=self.dry_run,
            issue_count=summary.issue_count,
            max_severity=summary.max_severity,
        )
        log = logger.bind(source=source, dry_run=self.dry_run)
        log.info("Pipeline cycle started", issue_count=summary.issue_count, max_severity=summary.max_severity.value)

        if summary.issue_count > 0:
            await self._handle_issues(summary, metrics, source, result)
        else:
            await self._check_resolved(result)
            if self._settings.status_report.enabled and not self.dry_run:
                result.status_reported = await self._report_status(summary, metrics, None, "periodic", force=False)

        log.info(
            "Pipeline cycle finished",
            created=len(result.created),
            updated=len(result.updated),
            closed=len(result.closed),
            executed=len(result.executions),
        )
        return result

    async def _handle_issues(
        self,
        summary: AlertSummary,
        metrics: Optional[SystemMetrics],
        source: str,
        result: PipelineResult,
    ):
        # Step 1: diagnose
        diagnosis = await self._diagnose(summary, metrics)
        result.diagnosis = diagnosis

        # Step 2: issue bookkeeping, once per key per cycle
        seen = set()
        for entry in summary.issues:
            key = issue_key(source, entry.type, entry.subject)
            if key in seen:
                logger.debug("Duplicate issue entry in cycle", issue_id=key)
                continue
            seen.add(key)
            await self._track(key, entry, summary, diagnosis, metrics, result)

        # Step 3: remediation
        await self._remediate(summary, diagnosis, result)

        # Step 4: notification
        await self._notify(summary, diagnosis, source, result)

        # Step 5: status report
        if self._settings.status_report.report_on_error and not self.dry_run:
            result.status_reported = await self._report_status(summary, metrics, diagnosis, "error", force=True)

    async def _diagnose(self, summary: AlertSummary, metrics: Optional[SystemMetrics]) -> Diagnosis:
        if self._analyzer is not None:
            try:
                return await self._analyzer.diagnose(summary, metrics)
            except Exception as e:
                logger.warning("Analyzer failed, using rule-based analysis", error=str(e))
        return rule_based_diagnosis(summary, metrics)

    async def _track(
        self,
        key: str,
        entry: IssueEntry,
        summary: AlertSummary,
        diagnosis: Diagnosis,
        metrics: Optional[SystemMetrics],
        result: PipelineResult,
    ):
        existing = self._issues.get(key)

        if existing is None:
            tracker_ref = None
            if self.dry_run:
                logger.info("Dry run: would open issue", issue_id=key)
            elif self._tracker is not None:
                try:
                    tracker_ref = await self._tracker.create_or_update_issue(
                        key,
                        f"[{entry.type}] {entry.subject} abnormal",
                        format_issue_body(summary, diagnosis, metrics),
                        entry.severity.value,
                        entry.type,
                    )
                except HostguardError as e:
                    logger.error("Issue tracker create failed", issue_id=key, error=str(e))
            self._issues.upsert(key, tracker_ref=tracker_ref, status=IssueStatus.OPEN, check_count=1, normal_count=0)
            result.created.append(key)
            logger.info("Issue opened", issue_id=key, tracker_ref=tracker_ref)
            return

        check_count = existing.check_count + 1
        if self.dry_run:
            logger.info("Dry run: would comment on issue", issue_id=key, check_count=check_count)
        elif self._tracker is not None and existing.tracker_ref is not None:
            try:
                await self._tracker.comment(
                    existing.tracker_ref,
                    format_update_comment(check_count, entry.subject, entry.current),
                )
            except HostguardError as e:
                logger.error("Issue tracker comment failed", issue_id=key, error=str(e))
        self._issues.upsert(
            key,
            tracker_ref=existing.tracker_ref,
            status=IssueStatus.OPEN,
            check_count=check_count,
            normal_count=0,
        )
        result.updated.append(key)
        logger.info("Issue still present", issue_id=key, check_count=check_count)

    def _candidate_actions(self, summary: AlertSummary, diagnosis: Diagnosis) -> List[ActionRequest]:
        ai_actions = diagnosis.auto_actions()
        if ai_actions:
            return ai_actions
        return suggested_actions(summary)

    async def _remediate(self, summary: AlertSummary, diagnosis: Diagnosis, result: PipelineResult):
        candidates = self._candidate_actions(summary, diagnosis)
        if not candidates:
            logger.info("No suggested remediation")
            return

        for request in candidates:
            if not self._cooldowns.check_cooldown(request.action, request.target):
                remaining = self._cooldowns.remaining_cooldown(request.action, request.target)
                logger.info(
                    "Action cooling down, skipped",
                    action=request.action,
                    target=request.target or None,
                    remaining_seconds=int(remaining),
                )
                result.cooling_down.append(request.action)
                continue

            execution = await self._executor.execute(request.action, request.target, dry_run=self.dry_run)
            result.executions.append(execution)

            if execution.status == ExecutionStatus.SKIPPED:
                continue
            if execution.status == ExecutionStatus.SUCCESS:
                self._cooldowns.set_cooldown(request.action, request.target, self._config.cooldown_seconds)
                self._record_audit(request.action, request.target, "success", "auto-remediation")
            elif execution.status == ExecutionStatus.REJECTED:
                logger.info("Remediation not approved", action=request.action, reason=execution.message)
            else:
                logger.warning(
                    "Remediation did not succeed",
                    action=request.action,
                    status=execution.status.value,
                    message=execution.message,
                )
                self._record_audit(request.action, request.target, "failed", execution.message)

    def _record_audit(self, action: str, target: str, outcome: str, details: str):
        if self._audit is None:
            return
        try:
            self._audit.record(action, target, outcome, details)
        except OSError as e:
            logger.error("Audit write failed", action=action, error=str(e))

    async def _notify(self, summary: AlertSummary, diagnosis: Diagnosis, source: str, result: PipelineResult):
        if self.dry_run:
            logger.info("Dry run: notification skipped")
            return
        if self._notifier is None:
            return

        severity = NOTIFY_SEVERITY.get(summary.max_severity, "warning")
        message = f"Detected {summary.issue_count} issue(s) (source: {source})\n\n{summary.summary}"
        if diagnosis.diagnosis:
            message += f"\n\nDiagnosis: {diagnosis.diagnosis}"
        executed = [e for e in result.executions if e.status != ExecutionStatus.REJECTED]
        if executed:
            message += "\n\nRemediation: " + ", ".join(f"{e.action} {e.status.value}" for e in executed)

        result.notification_errors = await self._notifier.notify_all(
            message,
            severity,
            title=f"hostguard alert on {summary.hostname or 'host'}",
        )
        result.notified = True

    async def _check_resolved(self, result: PipelineResult):
        threshold = self._config.normal_threshold
        for issue in self._issues.list(IssueStatus.OPEN):
            updated = self._issues.increment_normal_count(issue.issue_id)
            if updated is None:
                continue
            logger.debug(
                "Issue clean this cycle",
                issue_id=issue.issue_id,
                normal_count=updated.normal_count,
                threshold=threshold,
            )
            if updated.normal_count < threshold:
                continue

            if self.dry_run:
                logger.info("Dry run: would close issue", issue_id=issue.issue_id)
                continue

            if self._tracker is not None and updated.tracker_ref is not None:
                try:
                    await self._tracker.close_issue(
                        updated.tracker_ref,
                        f"Resolved automatically after {threshold} consecutive clean checks.",
                    )
                except HostguardError as e:
                    logger.error("Issue tracker close failed", issue_id=issue.issue_id, error=str(e))
                if self._notifier is not None:
                    await self._notifier.notify_all(
                        f"Issue #{updated.tracker_ref} ({issue.issue_id}) closed automatically",
                        "success",
                        title="hostguard issue resolved",
                    )

            self._issues.delete(issue.issue_id)
            result.closed.append(issue.issue_id)
            logger.info("Issue resolved", issue_id=issue.issue_id, tracker_ref=updated.tracker_ref)

    async def _report_status(
        self,
        summary: AlertSummary,
        metrics: Optional[SystemMetrics],
        diagnosis: Optional[Diagnosis],
        trigger: str,
        force: bool,
    ) -> bool:
        if self._status_reporter is None:
            return False
        try:
            return await self._status_reporter.report(summary, metrics, diagnosis, trigger=trigger, force=force)
        except HostguardError as e:
            logger.error("Status report failed", trigger=trigger, error=str(e))
            return False
