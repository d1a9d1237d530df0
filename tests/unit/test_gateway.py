"""Unit tests for the generative gateway."""
import asyncio
import time
import httpx
import openai
import pytest
from unittest.mock import AsyncMock

from app.services.agent.gateway import FALLBACK_RESPONSE, GenerativeGateway, is_transient_error


def _connection_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.APIConnectionError(request=request)


class TestGenerativeGateway:
    """Test completion, retry and timeout handling."""

    @pytest.mark.asyncio
    async def test_returns_completion(self, gateway, mock_openai):
        """Test a successful completion is returned cleaned."""
        answer = await gateway.get_response_with_timeout("prompt text")

        assert answer.startswith("Our organic coffee is roasted fresh every week.")
        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt text"}]

    @pytest.mark.asyncio
    async def test_timeout_returns_fallback_within_budget(self, gateway, mock_openai, completion_factory):
        """Test a slow model is abandoned at the timeout."""
        async def slow_completion(*args, **kwargs):
            await asyncio.sleep(1)
            return completion_factory("Too late.")

        mock_openai.chat.completions.create = AsyncMock(side_effect=slow_completion)

        started = time.monotonic()
        answer = await gateway.get_response_with_timeout("prompt", timeout_ms=50)
        elapsed = time.monotonic() - started

        assert answer == FALLBACK_RESPONSE
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_error_returns_fallback(self, gateway, mock_openai):
        """Test non-transient errors are not retried."""
        mock_openai.chat.completions.create = AsyncMock(side_effect=ValueError("bad request"))

        answer = await gateway.get_response_with_timeout("prompt")

        assert answer == FALLBACK_RESPONSE
        assert mock_openai.chat.completions.create.call_count == 1

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self, gateway, mock_openai, completion_factory):
        """Test connection errors are retried with backoff."""
        mock_openai.chat.completions.create = AsyncMock(
            side_effect=[_connection_error(), completion_factory("It ships next day.")]
        )

        answer = await gateway.get_response_with_timeout("prompt")

        assert answer == "It ships next day."
        assert mock_openai.chat.completions.create.call_count == 2

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, gateway, mock_openai):
        """Test persistent transient errors give up after the retry budget."""
        mock_openai.chat.completions.create = AsyncMock(side_effect=_connection_error())

        answer = await gateway.get_response_with_timeout("prompt")

        assert answer == FALLBACK_RESPONSE
        assert mock_openai.chat.completions.create.call_count == 3

    @pytest.mark.asyncio
    async def test_empty_completion_returns_fallback(self, gateway, mock_openai, completion_factory):
        """Test empty model output is treated as a failure."""
        mock_openai.chat.completions.create = AsyncMock(return_value=completion_factory("   "))

        assert await gateway.get_response_with_timeout("prompt") == FALLBACK_RESPONSE

    def test_is_fallback(self):
        """Test fallback detection."""
        assert GenerativeGateway.is_fallback(FALLBACK_RESPONSE)
        assert not GenerativeGateway.is_fallback("Something else.")

    def test_transient_errors(self):
        """Test transient error classification."""
        assert is_transient_error(_connection_error())
        assert not is_transient_error(ValueError("empty"))
