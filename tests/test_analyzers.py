"""Tests for threshold, rule-based and AI analysis."""

import json
from types import SimpleNamespace

import pytest

from hostguard.analyzers.ai import AIAnalyzer, parse_ai_response
from hostguard.analyzers.rules import rule_based_diagnosis, suggested_actions
from hostguard.analyzers.thresholds import build_alert_summary, check_thresholds, severity_for
from hostguard.config import AIConfig, ThresholdConfig
from hostguard.errors import TransientExternalError
from hostguard.models.alert import AlertSummary, ContainerHealth, IssueEntry, Severity, SystemMetrics
from hostguard.utils.retry import RetryPolicy


class TestThresholds:
    """Test cases for threshold evaluation."""

    @pytest.mark.parametrize("current,threshold,expected", [
        (80, 80, Severity.OK),
        (79, 80, Severity.OK),
        (90, 80, Severity.MINOR),      # 12% over
        (100, 80, Severity.MINOR),     # exactly 25% over
        (101, 80, Severity.WARNING),   # 26% over
        (120, 80, Severity.WARNING),   # exactly 50% over
        (121, 80, Severity.CRITICAL),  # 51% over
    ])
    def test_severity_for(self, current, threshold, expected):
        assert severity_for(current, threshold) == expected

    def test_check_thresholds(self):
        metrics = SystemMetrics(
            cpu_percent=95,
            memory_percent=50,
            disks={"/": 97.0, "/data": 40.0},
            load_1m=10,
            cpu_count=2,
        )

        issues = check_thresholds(metrics, ThresholdConfig())
        by_metric = {i.metric: i for i in issues}

        assert set(by_metric) == {"cpu", "disk:/", "load_per_cpu"}
        assert by_metric["cpu"].severity == Severity.MINOR
        assert by_metric["load_per_cpu"].current == 5.0
        assert by_metric["load_per_cpu"].severity == Severity.CRITICAL
        assert all(i.type == "threshold" for i in issues)

    def test_build_alert_summary_merges_sources(self):
        metrics = SystemMetrics(hostname="web-1", memory_percent=90)
        containers = ContainerHealth(unhealthy=[{"name": "api", "reason": "not_running"}])
        alerts = [{"id": 7, "type": "disk_full", "severity": "critical", "message": "/ full"}]

        summary = build_alert_summary(metrics, ThresholdConfig(), containers, alerts)

        assert summary.hostname == "web-1"
        assert summary.issue_count == 3
        assert summary.max_severity == Severity.CRITICAL
        assert [i.type for i in summary.issues] == ["threshold", "docker", "feed"]
        assert summary.summary.startswith("3 issue(s) detected")

    def test_empty_summary(self):
        summary = build_alert_summary(SystemMetrics(), ThresholdConfig())
        assert summary.issue_count == 0
        assert summary.max_severity == Severity.OK
        assert summary.summary == "all metrics normal"

    @pytest.mark.parametrize("raw,expected", [
        ("critical", Severity.CRITICAL),
        ("MAJOR", Severity.WARNING),
        ("minor", Severity.MINOR),
        ("info", Severity.MINOR),
    ])
    def test_feed_severity_mapping(self, raw, expected):
        summary = build_alert_summary(alerts=[{"type": "x", "severity": raw}])
        assert summary.issues[0].severity == expected


def summary_of(*issues: IssueEntry) -> AlertSummary:
    return AlertSummary.from_issues(issues, hostname="web-1")


class TestRuleBasedAnalysis:
    """Test cases for rule-based diagnosis and suggestions."""

    def test_critical_needs_human(self):
        diagnosis = rule_based_diagnosis(summary_of(
            IssueEntry(type="threshold", metric="memory", current=99, threshold=60, severity=Severity.CRITICAL),
        ))
        assert diagnosis.requires_human
        assert diagnosis.urgency == "immediate"
        assert diagnosis.analysis_method == "rule_based"
        assert [r.action for r in diagnosis.recommendations] == ["clear-cache"]

    def test_warning_is_soon(self):
        diagnosis = rule_based_diagnosis(summary_of(
            IssueEntry(type="threshold", metric="cpu", current=100, threshold=75, severity=Severity.WARNING),
        ))
        assert not diagnosis.requires_human
        assert diagnosis.urgency == "soon"
        assert diagnosis.auto_actions() == []

    def test_recommendations_unique_by_action(self):
        diagnosis = rule_based_diagnosis(summary_of(
            IssueEntry(type="threshold", metric="disk:/", current=95, threshold=90),
            IssueEntry(type="threshold", metric="disk:/data", current=96, threshold=90),
        ))
        assert [r.action for r in diagnosis.recommendations] == ["docker-prune", "rotate-logs"]
        assert [a.action for a in diagnosis.auto_actions()] == ["docker-prune", "rotate-logs"]

    def test_suggested_actions(self):
        actions = suggested_actions(summary_of(
            IssueEntry(type="threshold", metric="load_per_cpu", current=3, threshold=2),
            IssueEntry(type="threshold", metric="cpu", current=95, threshold=80),
            IssueEntry(type="docker", container="api", reason="not_running"),
            IssueEntry(type="docker", container="db", reason="health_check_failed"),
            IssueEntry(type="docker", container="worker", reason="high_resource_usage"),
        ))
        assert [(a.action, a.target) for a in actions] == [
            ("kill-runaway", ""),
            ("restart-service", "api"),
            ("restart-service", "db"),
            ("docker-prune", ""),
        ]

    def test_feed_alerts_suggest_nothing(self):
        assert suggested_actions(summary_of(IssueEntry(type="feed", alert_type="custom"))) == []


class TestParseAIResponse:
    """Test cases for parsing model replies."""

    REPLY = {
        "severity": "warning",
        "diagnosis": "Page cache is holding most memory",
        "root_cause": "log shipper buffering",
        "recommendations": [
            {"action": "clear-cache", "risk_level": "LOW", "auto_executable": True},
            {"action": "restart-service", "target": "shipper", "risk_level": "medium", "auto_executable": True},
        ],
        "requires_human": False,
        "urgency": "soon",
    }

    def test_plain_json(self):
        diagnosis = parse_ai_response(json.dumps(self.REPLY))
        assert diagnosis.analysis_method == "ai"
        assert not diagnosis.parse_error
        assert diagnosis.recommendations[0].risk_level == "low"
        assert [a.action for a in diagnosis.auto_actions()] == ["clear-cache"]

    def test_fenced_json(self):
        text = "Here is my analysis:\n```json\n" + json.dumps(self.REPLY) + "\n```\nGood luck."
        diagnosis = parse_ai_response(text)
        assert diagnosis.diagnosis == "Page cache is holding most memory"

    def test_embedded_object(self):
        text = "Analysis follows " + json.dumps(self.REPLY) + " end"
        diagnosis = parse_ai_response(text)
        assert diagnosis.root_cause == "log shipper buffering"

    @pytest.mark.parametrize("text", ["", "no json here", "{broken", "[1, 2, 3]"])
    def test_unparseable(self, text):
        diagnosis = parse_ai_response(text)
        assert diagnosis.parse_error
        assert diagnosis.requires_human
        assert diagnosis.recommendations == []


class FakeCompletions:
    def __init__(self, *replies):
        self._replies = list(replies)
        self.calls = 0

    async def create(self, **kwargs):
        self.calls += 1
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=None)


def fake_client(*replies):
    completions = FakeCompletions(*replies)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class TestAIAnalyzer:
    """Test cases for AIAnalyzer with a stubbed client."""

    @pytest.fixture
    def summary(self):
        return summary_of(IssueEntry(type="threshold", metric="memory", current=95, threshold=85))

    @pytest.mark.asyncio
    async def test_uses_model_reply(self, summary):
        client, completions = fake_client(json.dumps(TestParseAIResponse.REPLY))
        analyzer = AIAnalyzer(AIConfig(api_key="k"), client=client)

        diagnosis = await analyzer.diagnose(summary)

        assert diagnosis.analysis_method == "ai"
        assert completions.calls == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_rules(self, summary):
        client, completions = fake_client(TransientExternalError("down"), TransientExternalError("down"))
        analyzer = AIAnalyzer(
            AIConfig(api_key="k"),
            retry_policy=RetryPolicy(max_attempts=2, initial_delay=0, max_delay=0),
            client=client,
        )

        diagnosis = await analyzer.diagnose(summary)

        assert diagnosis.analysis_method == "rule_based"
        assert completions.calls == 2
