"""Tests for the HTTP ingestion endpoint."""

from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from hostguard.ingestion.webhook_server import router
from hostguard.lifecycle.shutdown import ShutdownCoordinator
from hostguard.models.alert import Severity
from hostguard.processing.pipeline import PipelineResult


class FakeWebhook:
    def __init__(self, busy: bool = False):
        self.busy = busy
        self.summaries = []

    async def submit(self, summary):
        if self.busy:
            return None
        self.summaries.append(summary)
        return PipelineResult(source="webhook", issue_count=summary.issue_count, max_severity=summary.max_severity)


def make_client(webhook: FakeWebhook, coordinator=None) -> TestClient:
    app = FastAPI()
    app.include_router(router, prefix="/webhooks")
    app.state.runtime = SimpleNamespace(
        webhook=webhook,
        coordinator=coordinator or ShutdownCoordinator(),
    )
    return TestClient(app)


PAYLOAD = {
    "hostname": "web-1",
    "issues": [
        {"type": "threshold", "metric": "disk:/", "current": 97, "threshold": 90, "severity": "WARNING"},
        {"type": "docker", "container": "api", "reason": "not_running", "severity": "bogus"},
    ],
}


class TestWebhookEndpoint:
    """Test cases for POST /webhooks/alerts."""

    def test_accepts_summary(self):
        webhook = FakeWebhook()
        response = make_client(webhook).post("/webhooks/alerts", json=PAYLOAD)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "processed"
        assert body["result"]["issue_count"] == 2
        assert body["result"]["max_severity"] == "warning"

        summary = webhook.summaries[0]
        assert summary.hostname == "web-1"
        assert summary.issues[1].severity == Severity.MINOR
        assert summary.issues[0].subject == "disk:/"

    def test_empty_summary(self):
        webhook = FakeWebhook()
        response = make_client(webhook).post("/webhooks/alerts", json={"hostname": "web-1"})

        assert response.status_code == 200
        assert webhook.summaries[0].issue_count == 0
        assert webhook.summaries[0].summary == "all metrics normal"

    def test_rejects_invalid_payload(self):
        response = make_client(FakeWebhook()).post("/webhooks/alerts", json={"issues": [{"metric": "cpu"}]})
        assert response.status_code == 422

    def test_busy_lock_returns_conflict(self):
        response = make_client(FakeWebhook(busy=True)).post("/webhooks/alerts", json=PAYLOAD)
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_refuses_during_shutdown(self):
        coordinator = ShutdownCoordinator()
        await coordinator.shutdown("test")

        response = make_client(FakeWebhook(), coordinator).post("/webhooks/alerts", json=PAYLOAD)

        assert response.status_code == 503
