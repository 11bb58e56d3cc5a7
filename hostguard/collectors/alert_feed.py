"""External alert feed over HTTP."""

from typing import Any, Dict, List, Optional, Set

import structlog

from hostguard.config import AlertFeedConfig
from hostguard.integrations.http import request_json
from hostguard.utils.retry import RetryPolicy, retry_async


logger = structlog.get_logger()


def alert_identity(alert: Dict[str, Any]) -> str:
    """Stable identity of an alert across polls."""
    if alert.get("id") is not None:
        return str(alert["id"])
    return f"{alert.get('type', '')}:{alert.get('entity', '')}:{alert.get('created', '')}"


class HttpAlertFeed:
    """
    Polls a JSON endpoint returning ``{"data": [...]}`` or a bare list.

    Each alert should carry ``id``, ``type``, ``severity`` and
    ``message``; anything else is passed through untouched.
    """

    def __init__(self, config: AlertFeedConfig, retry_policy: Optional[RetryPolicy] = None):
        self._config = config
        self._retry_policy = retry_policy or RetryPolicy()

    async def poll_alerts(self) -> List[Dict[str, Any]]:
        headers = {"Accept": "application/json"}
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"
        payload = await retry_async(
            lambda: request_json("GET", self._config.url, timeout=self._config.timeout_seconds, headers=headers),
            policy=self._retry_policy,
            description="alert_feed_poll",
        )
        if isinstance(payload, dict):
            payload = payload.get("data") or payload.get("alerts") or []
        return [a for a in payload or [] if isinstance(a, dict)]


class NewAlertDetector:
    """
    Reports alerts not present in the previous poll.

    The first poll only records a baseline so a restart does not
    replay every standing alert.
    """

    def __init__(self):
        self._previous: Optional[Set[str]] = None

    def new_alerts(self, alerts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        current = {alert_identity(a): a for a in alerts}
        previous, self._previous = self._previous, set(current)
        if previous is None:
            logger.info("Alert feed baseline recorded", alerts=len(current))
            return []
        return [a for key, a in current.items() if key not in previous]
