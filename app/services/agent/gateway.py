"""Timeout-bounded gateway to the generative language model."""
import asyncio
import logging
import time
from typing import Optional

import openai
from openai import AsyncOpenAI

from app.core.config import settings
from app.core.retry import with_retry
from app.services.agent.prompt import clean_completion

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE = (
    "I'd recommend trying this product based on your previous orders. "
    "It's a popular choice among our hotel customers."
)

_TRANSIENT_ERRORS = (
    openai.APIConnectionError,  # includes APITimeoutError
    openai.RateLimitError,
    openai.InternalServerError,
)


def is_transient_error(error: BaseException) -> bool:
    """Transport-class failures worth retrying; content failures are not."""
    return isinstance(error, _TRANSIENT_ERRORS)


class GenerativeGateway:
    """Service for free-text answers to caller questions."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ):
        # Retries are handled here, not by the SDK, so only transport errors retry
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key, max_retries=0)
        self.model = model or settings.openai_model
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.llm_timeout_ms
        self.max_retries = max_retries if max_retries is not None else settings.llm_max_retries
        self.retry_delay_ms = (
            retry_delay_ms if retry_delay_ms is not None else settings.llm_retry_delay_ms
        )
        self.retry_backoff = retry_backoff if retry_backoff is not None else settings.llm_retry_backoff

    async def complete(self, prompt: str) -> str:
        """Single completion request. Raises on transport errors or an empty reply."""
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.7,
            max_tokens=150,
        )
        if not response.choices:
            raise ValueError("Completion returned no choices")
        content = response.choices[0].message.content
        if not isinstance(content, str) or not content.strip():
            raise ValueError("Completion returned empty content")

        answer = clean_completion(content)
        if not answer:
            raise ValueError("Completion had no speakable text")
        return answer

    async def complete_with_retry(self, prompt: str) -> str:
        """Completion with bounded exponential backoff for transient errors."""
        return await with_retry(
            lambda: self.complete(prompt),
            max_retries=self.max_retries,
            initial_delay=self.retry_delay_ms / 1000,
            backoff_factor=self.retry_backoff,
            is_retryable=is_transient_error,
            label="LLM completion",
        )

    async def get_response_with_timeout(
        self, prompt: str, timeout_ms: Optional[int] = None
    ) -> str:
        """
        Get an answer, guaranteed to return within ``timeout_ms``.

        The completion runs as its own task and is raced against the timer.
        If the timer wins, the task is abandoned rather than cancelled: it may
        still finish in the background, but its result is only logged and
        dropped, so a late answer can never reach a session or a document.

        Returns:
            The model's answer, or FALLBACK_RESPONSE on timeout or failure
        """
        timeout_ms = timeout_ms if timeout_ms is not None else self.timeout_ms
        started = time.monotonic()
        task = asyncio.ensure_future(self.complete_with_retry(prompt))

        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        elapsed_ms = (time.monotonic() - started) * 1000
        if task not in done:
            task.add_done_callback(_discard_abandoned_completion)
            logger.warning(
                f"[LLM] Timed out after {elapsed_ms:.0f}ms (limit: {timeout_ms}ms), "
                f"using fallback response"
            )
            return FALLBACK_RESPONSE

        try:
            answer = task.result()
        except Exception as e:
            logger.error(
                f"[LLM] Completion failed after {elapsed_ms:.0f}ms - "
                f"Error: {type(e).__name__}: {str(e)}"
            )
            return FALLBACK_RESPONSE

        logger.info(f"[LLM] Completion received in {elapsed_ms:.0f}ms (length: {len(answer)})")
        return answer

    @staticmethod
    def is_fallback(answer: str) -> bool:
        return answer == FALLBACK_RESPONSE


def _discard_abandoned_completion(task: "asyncio.Future[str]") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"[LLM] Abandoned completion failed: {type(error).__name__}: {error}")
    else:
        logger.debug("[LLM] Abandoned completion finished late, result discarded")
