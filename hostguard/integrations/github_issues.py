"""GitHub issue tracker client over the REST API."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from hostguard.config import GitHubConfig
from hostguard.integrations.http import request_json
from hostguard.models.alert import AlertSummary, SystemMetrics
from hostguard.models.outputs import Diagnosis
from hostguard.utils.retry import RetryPolicy, retry_async


logger = structlog.get_logger()


class GitHubIssueTracker:
    """
    Opens, comments on and closes one GitHub issue per tracked problem.

    Issue titles start with ``[<issue_id>]`` so an issue can be found
    again from its key alone.
    """

    def __init__(self, config: GitHubConfig, retry_policy: Optional[RetryPolicy] = None):
        self._config = config
        self._retry_policy = retry_policy or RetryPolicy()
        self._base = f"{config.api_url.rstrip('/')}/repos/{config.repo}"

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _call(self, method: str, path: str, description: str, **kwargs) -> Any:
        return await retry_async(
            lambda: request_json(
                method,
                f"{self._base}{path}",
                timeout=self._config.timeout_seconds,
                headers=self._headers,
                **kwargs,
            ),
            policy=self._retry_policy,
            description=description,
        )

    def labels_for(self, severity: str, issue_type: str) -> List[str]:
        labels = list(self._config.labels)
        if severity:
            labels.append(f"severity/{severity}")
        if issue_type:
            labels.append(f"type/{issue_type}")
        return labels

    async def find_by_issue_id(self, issue_id: str) -> Optional[int]:
        """Number of the open issue whose title starts with ``[issue_id]``."""
        params = {"state": "open", "per_page": "100"}
        if self._config.labels:
            params["labels"] = self._config.labels[0]
        issues = await self._call("GET", "/issues", "github_find_issue", params=params) or []
        prefix = f"[{issue_id}]"
        for issue in issues:
            if "pull_request" not in issue and issue.get("title", "").startswith(prefix):
                return int(issue["number"])
        return None

    async def comment(self, number: int, body: str):
        await self._call("POST", f"/issues/{number}/comments", "github_comment", json={"body": body})

    async def create_or_update_issue(
        self,
        issue_id: str,
        title: str,
        body: str,
        severity: str = "",
        issue_type: str = "",
    ) -> Optional[int]:
        """Comment on the existing issue for *issue_id*, or open a new one."""
        existing = await self.find_by_issue_id(issue_id)
        if existing is not None:
            await self.comment(existing, body)
            logger.info("GitHub issue updated", issue_id=issue_id, number=existing)
            return existing

        created = await self._call(
            "POST",
            "/issues",
            "github_create_issue",
            json={
                "title": f"[{issue_id}] {title}",
                "body": body,
                "labels": self.labels_for(severity, issue_type),
            },
        )
        number = int(created["number"]) if created and "number" in created else None
        logger.info("GitHub issue created", issue_id=issue_id, number=number)
        return number

    async def close_issue(self, number: int, comment: str = ""):
        if comment:
            await self.comment(number, comment)
        await self._call(
            "PATCH",
            f"/issues/{number}",
            "github_close_issue",
            json={"state": "closed", "state_reason": "completed"},
        )
        logger.info("GitHub issue closed", number=number)


def format_issue_body(
    summary: AlertSummary,
    diagnosis: Optional[Diagnosis] = None,
    metrics: Optional[SystemMetrics] = None,
) -> str:
    """Markdown body for a newly opened issue."""
    lines = [
        "## Alert Summary",
        "",
        f"**Host:** {summary.hostname or 'unknown'}",
        f"**Time:** {summary.timestamp.strftime('%Y-%m-%d %H:%M:%S')} UTC",
        "",
        "### Issues Detected",
    ]
    lines.extend(f"- **{i.type}**: {i.subject} ({i.severity.value})" for i in summary.issues)
    lines += [
        "",
        "### Details",
        "```json",
        json.dumps(summary.to_dict(), indent=2),
        "```",
    ]

    if diagnosis is not None:
        lines += [
            "",
            "### Analysis",
            "",
            f"**Diagnosis:** {diagnosis.diagnosis or 'N/A'}",
            "",
            "**Recommendations:**",
        ]
        lines.extend(f"- {r.action}: {r.description}" for r in diagnosis.recommendations)

    if metrics is not None:
        lines += ["", "### System Info", "```json", json.dumps(metrics.to_dict(), indent=2), "```"]

    lines += ["", "---", "*This issue was opened automatically by hostguard*"]
    return "\n".join(lines)


def format_update_comment(check_count: int, subject: str, current: Optional[float]) -> str:
    value = f"{current:g}" if current is not None else "n/a"
    return (
        f"### Status update (check #{check_count})\n\n"
        f"**Time:** {datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S')} UTC\n"
        f"**Subject:** {subject}\n"
        f"**Current value:** {value}\n\n"
        "The problem is still present."
    )
