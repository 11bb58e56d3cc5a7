"""Tests for retry with exponential backoff."""

import pytest

from hostguard.errors import ExternalServiceError, TransientExternalError
from hostguard.utils.retry import RetryPolicy, is_retryable_status, retry_async


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


class FlakyOperation:
    """Fails with the given errors, then returns "ok"."""

    def __init__(self, *errors):
        self._errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return "ok"


class TestRetryPolicy:
    """Test cases for RetryPolicy."""

    def test_default_delays(self):
        policy = RetryPolicy()
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2, 4, 8]

    def test_delay_is_capped(self):
        policy = RetryPolicy(initial_delay=10, multiplier=3, max_delay=30)
        assert policy.delay_for(3) == 30


class TestRetryAsync:
    """Test cases for retry_async."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        sleep = RecordingSleep()
        operation = FlakyOperation()

        assert await retry_async(operation, sleep=sleep) == "ok"
        assert operation.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_errors(self):
        sleep = RecordingSleep()
        operation = FlakyOperation(TransientExternalError("503"), TransientExternalError("503"))

        assert await retry_async(operation, sleep=sleep) == "ok"
        assert operation.calls == 3
        assert sleep.delays == [2, 4]

    @pytest.mark.asyncio
    async def test_exhausted_reraises_without_final_sleep(self):
        """Four attempts, three sleeps, then the last error propagates."""
        sleep = RecordingSleep()
        operation = FlakyOperation(*[TransientExternalError(f"fail {n}") for n in range(5)])

        with pytest.raises(TransientExternalError, match="fail 3"):
            await retry_async(operation, RetryPolicy(max_attempts=4), sleep=sleep)

        assert operation.calls == 4
        assert sleep.delays == [2, 4, 8]

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_immediately(self):
        sleep = RecordingSleep()
        operation = FlakyOperation(ExternalServiceError("404", status=404))

        with pytest.raises(ExternalServiceError):
            await retry_async(operation, sleep=sleep)

        assert operation.calls == 1
        assert sleep.delays == []


class TestRetryableStatus:
    """Test cases for HTTP status classification."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_retryable(self, status):
        assert is_retryable_status(status)

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_not_retryable(self, status):
        assert not is_retryable_status(status)
