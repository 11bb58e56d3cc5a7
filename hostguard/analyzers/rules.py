"""Rule-based diagnosis and suggested actions."""

from typing import List, Optional

import structlog

from hostguard.models.alert import AlertSummary, Severity, SystemMetrics
from hostguard.models.execution import ActionRequest
from hostguard.models.outputs import Diagnosis, Recommendation


logger = structlog.get_logger()

URGENCY = {
    Severity.CRITICAL: "immediate",
    Severity.WARNING: "soon",
    Severity.MINOR: "can_wait",
    Severity.OK: "can_wait",
}


def _recommendations_for(issue_type: str, subject: str) -> List[Recommendation]:
    if subject in ("cpu", "load_per_cpu"):
        return [Recommendation(
            action="kill-runaway",
            description="Terminate processes holding the CPU",
            risk_level="medium",
            auto_executable=False,
        )]
    if subject == "memory":
        return [Recommendation(
            action="clear-cache",
            description="Drop kernel caches to free memory",
            risk_level="low",
            auto_executable=True,
        )]
    if subject.startswith("disk"):
        return [
            Recommendation(
                action="docker-prune",
                description="Remove unused Docker objects",
                risk_level="low",
                auto_executable=True,
            ),
            Recommendation(
                action="rotate-logs",
                description="Rotate and trim log files",
                risk_level="low",
                auto_executable=True,
            ),
        ]
    if issue_type == "docker":
        return [Recommendation(
            action="restart-service",
            description=f"Restart container {subject}",
            risk_level="medium",
            auto_executable=False,
            target=subject,
        )]
    return []


def rule_based_diagnosis(summary: AlertSummary, metrics: Optional[SystemMetrics] = None) -> Diagnosis:
    """Deterministic diagnosis used when AI analysis is off or fails."""
    severity = summary.max_severity
    recommendations: List[Recommendation] = []
    seen = set()
    for issue in summary.issues:
        for rec in _recommendations_for(issue.type, issue.subject):
            if rec.action not in seen:
                seen.add(rec.action)
                recommendations.append(rec)

    if summary.issues:
        diagnosis = "Rule-based analysis: " + "; ".join(i.describe() for i in summary.issues)
    else:
        diagnosis = "No issues detected"

    return Diagnosis(
        severity=severity.value,
        diagnosis=diagnosis,
        root_cause="unknown (rule-based analysis)",
        recommendations=recommendations,
        requires_human=severity == Severity.CRITICAL,
        urgency=URGENCY[severity],
        analysis_method="rule_based",
    )


def suggested_actions(summary: AlertSummary) -> List[ActionRequest]:
    """Actions derived from the alert itself, unique by action and target."""
    requests: List[ActionRequest] = []
    seen = set()

    def add(action: str, target: str, reason: str):
        if (action, target) not in seen:
            seen.add((action, target))
            requests.append(ActionRequest(action=action, target=target, reason=reason))

    for issue in summary.issues:
        if issue.type == "threshold":
            metric = issue.metric or ""
            if metric in ("cpu", "load_per_cpu"):
                add("kill-runaway", "", f"{metric} over threshold")
            elif metric == "memory":
                add("clear-cache", "", "memory over threshold")
            elif metric.startswith("disk"):
                add("docker-prune", "", f"{metric} over threshold")
                add("rotate-logs", "", f"{metric} over threshold")
        elif issue.type == "docker":
            reason = issue.reason or ""
            if reason in ("not_running", "health_check_failed"):
                add("restart-service", issue.container or "", f"container {reason}")
            elif reason == "high_resource_usage":
                add("docker-prune", "", "container resource usage high")

    return requests


class RuleBasedAnalyzer:
    """Analyzer that never leaves the host."""

    async def diagnose(self, summary: AlertSummary, metrics: Optional[SystemMetrics] = None) -> Diagnosis:
        diagnosis = rule_based_diagnosis(summary, metrics)
        logger.debug("Rule-based diagnosis", severity=diagnosis.severity, recommendations=len(diagnosis.recommendations))
        return diagnosis
