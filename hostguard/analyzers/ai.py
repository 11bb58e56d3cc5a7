"""AI-backed diagnosis over an OpenAI-compatible chat API."""

import json
import re
from typing import Any, Dict, Optional

import openai
import structlog
from openai import AsyncOpenAI
from pydantic import ValidationError

from hostguard.analyzers.rules import RuleBasedAnalyzer
from hostguard.config import AIConfig
from hostguard.errors import ExternalServiceError, HostguardError, TransientExternalError
from hostguard.models.alert import AlertSummary, SystemMetrics
from hostguard.models.outputs import Diagnosis
from hostguard.prompts.diagnosis_prompt import DIAGNOSIS_SYSTEM_PROMPT, format_diagnosis_prompt
from hostguard.utils.retry import RetryPolicy, retry_async


logger = structlog.get_logger()

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def _load_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def parse_ai_response(text: str) -> Diagnosis:
    """
    Parse a model reply into a Diagnosis.

    Tries the whole reply, then a fenced ```json block, then the span
    from the first ``{`` to the last ``}``. Unparseable replies become
    a ``parse_error`` diagnosis that requires a human.
    """
    text = (text or "").strip()
    data = _load_object(text)

    if data is None:
        match = _FENCED_JSON.search(text)
        if match:
            data = _load_object(match.group(1))

    if data is None:
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            data = _load_object(text[start:end + 1])

    if data is not None:
        try:
            return Diagnosis(**{**data, "analysis_method": "ai"})
        except ValidationError as e:
            logger.warning("AI response failed validation", error=str(e))

    return Diagnosis(
        severity="unknown",
        diagnosis="AI response could not be parsed",
        requires_human=True,
        urgency="soon",
        analysis_method="ai",
        parse_error=True,
        raw_response=text[:2000],
    )


class AIAnalyzer:
    """
    Diagnosis through an OpenAI-compatible endpoint.

    Transient API failures are retried with backoff; when the call
    still fails the rule-based analyzer answers instead.
    """

    def __init__(
        self,
        config: AIConfig,
        retry_policy: Optional[RetryPolicy] = None,
        fallback=None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self._config = config
        self._retry_policy = retry_policy or RetryPolicy()
        self._fallback = fallback or RuleBasedAnalyzer()
        self._client = client or AsyncOpenAI(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=config.timeout,
            max_retries=0,
        )

    async def _complete(self, prompt: str) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._config.model,
                messages=[
                    {"role": "system", "content": DIAGNOSIS_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
            )
        except (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError) as e:
            raise TransientExternalError(f"AI request failed: {e}") from e
        except openai.APIStatusError as e:
            raise ExternalServiceError(f"AI request rejected: {e}", status=e.status_code) from e

        logger.debug(
            "AI response received",
            model=self._config.model,
            usage=response.usage.model_dump() if response.usage else None,
        )
        return response.choices[0].message.content or ""

    async def diagnose(self, summary: AlertSummary, metrics: Optional[SystemMetrics] = None) -> Diagnosis:
        prompt = format_diagnosis_prompt(summary, metrics)
        try:
            text = await retry_async(
                lambda: self._complete(prompt),
                policy=self._retry_policy,
                description="ai_diagnosis",
            )
        except HostguardError as e:
            logger.warning("AI diagnosis unavailable, using rule-based analysis", error=str(e))
            return await self._fallback.diagnose(summary, metrics)

        diagnosis = parse_ai_response(text)
        logger.info(
            "AI diagnosis complete",
            severity=diagnosis.severity,
            recommendations=len(diagnosis.recommendations),
            parse_error=diagnosis.parse_error,
        )
        return diagnosis
