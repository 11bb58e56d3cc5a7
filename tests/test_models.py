"""Tests for alert, issue and execution models."""

from dataclasses import FrozenInstanceError
from datetime import datetime

import pytest

from hostguard.models.alert import AlertSummary, IssueEntry, Severity, SystemMetrics
from hostguard.models.execution import ExecutionResult, ExecutionStatus, RiskLevel
from hostguard.models.issue import IssueStatus, TrackedIssue
from hostguard.models.outputs import AlertSummaryPayload


class TestSeverity:
    """Test cases for Severity ordering and parsing."""

    def test_ordering(self):
        assert Severity.OK < Severity.MINOR < Severity.WARNING < Severity.CRITICAL
        assert max([Severity.MINOR, Severity.CRITICAL, Severity.WARNING]) == Severity.CRITICAL

    def test_parse(self):
        assert Severity.parse("Critical") == Severity.CRITICAL
        assert Severity.parse("nonsense") == Severity.MINOR
        assert Severity.parse(None, default=Severity.OK) == Severity.OK


class TestIssueEntry:
    """Test cases for IssueEntry."""

    def test_subject_precedence(self):
        assert IssueEntry(type="threshold", metric="cpu", container="x").subject == "cpu"
        assert IssueEntry(type="docker", container="api", alert_type="y").subject == "api"
        assert IssueEntry(type="feed", alert_type="disk_full").subject == "disk_full"
        assert IssueEntry(type="feed").subject == "unknown"

    def test_describe(self):
        assert IssueEntry(type="threshold", metric="cpu", current=91.5, threshold=80).describe() == \
            "cpu at 91.5 (threshold 80)"
        assert IssueEntry(type="docker", container="api", reason="not_running").describe() == "api: not_running"

    def test_immutable(self):
        entry = IssueEntry(type="threshold", metric="cpu")
        with pytest.raises(FrozenInstanceError):
            entry.metric = "memory"


class TestAlertSummary:
    """Test cases for AlertSummary."""

    def test_from_issues(self):
        summary = AlertSummary.from_issues(
            [
                IssueEntry(type="threshold", metric="cpu", current=90, threshold=80, severity=Severity.MINOR),
                IssueEntry(type="docker", container="api", reason="not_running", severity=Severity.WARNING),
            ],
            hostname="web-1",
        )

        assert summary.issue_count == 2
        assert summary.max_severity == Severity.WARNING
        assert summary.summary == "2 issue(s) detected: cpu at 90 (threshold 80); api: not_running"

    def test_empty(self):
        summary = AlertSummary.empty("web-1")
        assert summary.issue_count == 0
        assert summary.max_severity == Severity.OK
        assert summary.summary == "all metrics normal"

    def test_from_dict(self):
        summary = AlertSummary.from_dict({
            "timestamp": "2024-01-15T10:30:00Z",
            "hostname": "web-1",
            "max_severity": "critical",
            "summary": "disk almost full",
            "issues": [{"type": "threshold", "metric": "disk:/", "current": "97.5", "threshold": 90, "severity": "critical"}],
        })

        assert summary.timestamp.year == 2024
        assert summary.issue_count == 1
        assert summary.max_severity == Severity.CRITICAL
        assert summary.issues[0].current == 97.5

    def test_to_dict(self):
        summary = AlertSummary.from_issues([IssueEntry(type="feed", alert_type="x")], hostname="h")
        data = summary.to_dict()
        assert data["issue_count"] == 1
        assert data["max_severity"] == "minor"
        assert data["issues"] == [{"type": "feed", "severity": "minor", "alert_type": "x"}]

    def test_payload_keeps_explicit_fields(self):
        payload = AlertSummaryPayload(
            hostname="web-1",
            issue_count=5,
            max_severity="critical",
            summary="custom",
            issues=[{"type": "threshold", "metric": "cpu"}],
        )
        summary = payload.to_summary()
        assert summary.issue_count == 5
        assert summary.max_severity == Severity.CRITICAL
        assert summary.summary == "custom"


class TestSystemMetrics:
    def test_derived_values(self):
        metrics = SystemMetrics(load_1m=6.0, cpu_count=4, disks={"/": 72.5})
        assert metrics.load_per_cpu == 1.5
        assert metrics.root_disk_percent == 72.5
        assert metrics.to_dict()["load_per_cpu"] == 1.5


class TestTrackedIssue:
    def test_round_trip(self):
        issue = TrackedIssue(
            issue_id="periodic_threshold_cpu",
            tracker_ref=12,
            check_count=3,
            created_at=datetime(2024, 1, 1, 12, 0),
            updated_at=datetime(2024, 1, 1, 12, 5),
        )
        restored = TrackedIssue.from_dict(issue.to_dict())
        assert restored == issue
        assert restored.status == IssueStatus.OPEN


class TestExecutionResult:
    @pytest.mark.parametrize("status,ok", [
        (ExecutionStatus.SUCCESS, True),
        (ExecutionStatus.PARTIAL, True),
        (ExecutionStatus.SKIPPED, True),
        (ExecutionStatus.FAILED, False),
        (ExecutionStatus.REJECTED, False),
        (ExecutionStatus.ERROR, False),
        (ExecutionStatus.VALIDATION_FAILED, False),
    ])
    def test_ok(self, status, ok):
        assert ExecutionResult(action="clear-cache", status=status).ok is ok

    def test_defaults_and_dict(self):
        result = ExecutionResult(action="clear-cache")
        assert result.risk_level == RiskLevel.CRITICAL
        data = result.to_dict()
        assert data["action"] == "clear-cache"
        assert data["risk_level"] == "critical"
