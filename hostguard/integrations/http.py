"""Small aiohttp helper that maps failures onto the error taxonomy."""

import asyncio
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import aiohttp

from hostguard.errors import ExternalServiceError, TransientExternalError
from hostguard.utils.retry import is_retryable_status


def redact_url(url: str) -> str:
    """Scheme and host only; paths can carry credentials (Telegram bot tokens)."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        return "<url>"
    host = parts.hostname if parts.port is None else f"{parts.hostname}:{parts.port}"
    return f"{parts.scheme}://{host}"


async def request_json(
    method: str,
    url: str,
    timeout: float = 30.0,
    headers: Optional[Dict[str, str]] = None,
    **kwargs,
) -> Any:
    """
    Send one HTTP request and decode the JSON reply (None if empty).

    Error messages name the host but never the path or query.

    Raises:
        TransientExternalError: on connection errors, timeouts, 429 and 5xx
        ExternalServiceError: on any other non-2xx status
    """
    target = f"{method} {redact_url(url)}"
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.request(method, url, headers=headers, **kwargs) as response:
                body = await response.text()
                if response.status >= 400:
                    message = f"{target} returned {response.status}: {body[:200]}"
                    if is_retryable_status(response.status):
                        raise TransientExternalError(message, status=response.status)
                    raise ExternalServiceError(message, status=response.status)
                if not body.strip():
                    return None
                try:
                    return await response.json(content_type=None)
                except ValueError:
                    return None
    except aiohttp.ClientError as e:
        raise TransientExternalError(f"{target} failed: {type(e).__name__}") from e
    except asyncio.TimeoutError as e:
        raise TransientExternalError(f"{target} timed out") from e
