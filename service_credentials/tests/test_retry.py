"""
Unit tests for the issuer retry decorator.
"""

import pytest
from unittest.mock import MagicMock, patch

from shared.retry import RetryConfig, RetryError, retry_on_exception


class FlakyCall:
    """Async callable that raises the queued outcomes before succeeding."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self, *args):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def wrap(call, config, **kwargs):
    async def fetch(*args):
        return await call(*args)
    return retry_on_exception((ConnectionError,), config, **kwargs)(fetch)


class TestRetryConfig:
    """Test cases for RetryConfig."""

    def test_exponential_delay_is_capped(self):
        """Test delays double per attempt and stop at max_delay."""
        config = RetryConfig(base_delay=0.5, max_delay=1.5, jitter=False)

        assert [config.delay_for(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 1.5, 1.5]

    def test_jitter_stays_within_ten_percent(self):
        """Test jittered delay stays within 10% of the base value."""
        config = RetryConfig(base_delay=1.0)

        for _ in range(20):
            assert 0.9 <= config.delay_for(1) <= 1.1


class TestRetryOnException:
    """Test cases for retry_on_exception."""

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        """Test the last failure is wrapped once attempts run out."""
        call = FlakyCall(*[ConnectionError("reset")] * 3)
        wrapped = wrap(call, RetryConfig(max_attempts=3, base_delay=0, jitter=False))

        with pytest.raises(RetryError) as exc_info:
            await wrapped("/cgi-bin/token")

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, ConnectionError)
        assert call.calls == 3

    @pytest.mark.asyncio
    async def test_other_exceptions_not_retried(self):
        """Test exceptions outside the retry set propagate on the first attempt."""
        call = FlakyCall(ValueError("bad payload"))
        wrapped = wrap(call, RetryConfig(base_delay=0))

        with pytest.raises(ValueError):
            await wrapped()

        assert call.calls == 1

    @pytest.mark.asyncio
    async def test_context_fields_logged(self):
        """Test the context callable adds its fields to the retry log lines."""
        call = FlakyCall(ConnectionError("reset"), "TOKEN")
        logger = MagicMock()

        with patch("shared.retry.get_logger", return_value=logger):
            wrapped = wrap(
                call,
                RetryConfig(base_delay=0, jitter=False),
                context=lambda path: {"issuer_path": path},
            )
            assert await wrapped("/cgi-bin/token") == "TOKEN"

        assert logger.warning.call_args.kwargs["issuer_path"] == "/cgi-bin/token"
        assert logger.info.call_args.kwargs["issuer_path"] == "/cgi-bin/token"
