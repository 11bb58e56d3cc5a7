"""Notification channels: Slack incoming webhook and Telegram bot."""

from typing import List, Optional

import structlog

from hostguard.config import NotificationConfig
from hostguard.errors import HostguardError
from hostguard.integrations.http import request_json
from hostguard.utils.retry import RetryPolicy, retry_async


logger = structlog.get_logger()

SEVERITY_STYLE = {
    "error": (":rotating_light:", "#FF0000"),
    "warning": (":warning:", "#FFA500"),
    "info": (":information_source:", "#4A90D9"),
    "success": (":white_check_mark:", "#36a64f"),
}


class SlackNotifier:
    """Posts an attachment to a Slack incoming webhook."""

    name = "slack"

    def __init__(self, webhook_url: str, timeout: float = 10.0):
        self._webhook_url = webhook_url
        self._timeout = timeout

    async def send(self, title: str, message: str, severity: str):
        emoji, color = SEVERITY_STYLE.get(severity, (":white_circle:", "#808080"))
        payload = {
            "text": f"{emoji} {title}",
            "attachments": [
                {
                    "color": color,
                    "text": message,
                    "mrkdwn_in": ["text"],
                }
            ],
        }
        await request_json("POST", self._webhook_url, timeout=self._timeout, json=payload)


class TelegramNotifier:
    """Sends a message through the Telegram Bot API."""

    name = "telegram"

    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10.0):
        self._url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        self._chat_id = chat_id
        self._timeout = timeout

    async def send(self, title: str, message: str, severity: str):
        text = f"[{severity.upper()}] {title}\n\n{message}"
        await request_json(
            "POST",
            self._url,
            timeout=self._timeout,
            json={"chat_id": self._chat_id, "text": text, "disable_web_page_preview": True},
        )


class NotificationHub:
    """Fans a message out to every configured channel."""

    def __init__(self, channels: List, retry_policy: Optional[RetryPolicy] = None):
        self._channels = list(channels)
        self._retry_policy = retry_policy or RetryPolicy()

    @classmethod
    def from_config(cls, config: NotificationConfig, retry_policy: Optional[RetryPolicy] = None) -> "NotificationHub":
        channels = []
        if config.slack_webhook_url:
            channels.append(SlackNotifier(config.slack_webhook_url, config.timeout_seconds))
        if config.telegram_bot_token and config.telegram_chat_id:
            channels.append(
                TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id, config.timeout_seconds)
            )
        return cls(channels, retry_policy)

    @property
    def channel_names(self) -> List[str]:
        return [c.name for c in self._channels]

    async def notify_all(self, message: str, severity: str = "info", title: str = "hostguard") -> int:
        """
        Send to every channel.

        Returns:
            Number of channels that failed after retries
        """
        errors = 0
        for channel in self._channels:
            try:
                await retry_async(
                    lambda channel=channel: channel.send(title, message, severity),
                    policy=self._retry_policy,
                    description=f"notify_{channel.name}",
                )
                logger.info("Notification sent", channel=channel.name, severity=severity)
            except HostguardError as e:
                errors += 1
                logger.error("Notification failed", channel=channel.name, error=str(e))
        if not self._channels:
            logger.debug("No notification channels configured", title=title)
        return errors
