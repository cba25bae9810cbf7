"""
History Chat Response Generator - session-based generation

Owns the one generation session per ChatContext:
- created lazily after an availability check, seeded with the system
  prompt and a bounded window of recent turns
- reused for every following turn of the thread
- discarded by reset() when the thread is cleared

Also manages:
- Timeouts and transient-error retry with backoff
- A circuit breaker that fails fast while the backend is down
- Mapping backend failures onto the generation error hierarchy
"""

import asyncio
import logging
import time
from typing import Optional

from errors import (
    GenerationError,
    GenerationUnavailable,
    GenerationDownloading,
    classify_generation_error,
    StatusPollError,
)
from logging_config import log_llm
from services.llm_client import AVAILABLE, DOWNLOADABLE, DOWNLOADING

from .context_builder import build_turns_context
from .prompts import build_prompt, build_system_prompt
from .session import ChatContext, USER

logger = logging.getLogger(__name__)

# Retry settings for transient model loading errors
MODEL_RETRY_MAX = 2
MODEL_RETRY_DELAY = 3.0  # seconds


_PERMANENT_ERROR_PATTERNS = [
    "model not found",
    "does not exist",
    "invalid model",
    "quota",
]

_TRANSIENT_ERROR_PATTERNS = [
    "model is loading",
    "connection refused",
    "connection reset",
    "temporarily unavailable",
]


def is_retryable_error(error: Exception) -> bool:
    """Check if error is transient and worth retrying (not permanent failures)."""
    error_str = str(error).lower()
    if any(p in error_str for p in _PERMANENT_ERROR_PATTERNS):
        return False
    return any(p in error_str for p in _TRANSIENT_ERROR_PATTERNS)


class _CircuitBreaker:
    """Prevents cascading failures when the LLM service is down."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 30):
        self.failures = 0
        self.threshold = failure_threshold
        self.timeout = recovery_timeout
        self.last_failure_time = 0.0
        self.state = "closed"  # closed, open, half_open

    def is_open(self) -> bool:
        if self.state == "open":
            if time.time() - self.last_failure_time > self.timeout:
                self.state = "half_open"
                return False
            return True
        return False

    def record_success(self) -> None:
        self.failures = 0
        self.state = "closed"

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.threshold:
            self.state = "open"
            logger.error("Circuit breaker OPEN - LLM service unavailable")


class ResponseGenerator:
    """Generates replies through a per-context language session."""

    def __init__(
        self,
        llm_client,
        temperature: float = 0.7,
        top_k: int = 3,
        max_tokens: Optional[int] = None,
        timeout: float = 180.0,
        turns_max: int = 10,
        turns_max_chars: int = 2000,
        retry_delay: float = MODEL_RETRY_DELAY,
        circuit_breaker: Optional[_CircuitBreaker] = None,
    ):
        self._llm_client = llm_client
        self.temperature = temperature
        self.top_k = top_k
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.turns_max = turns_max
        self.turns_max_chars = turns_max_chars
        self.retry_delay = retry_delay
        self._breaker = circuit_breaker or _CircuitBreaker()

    async def ensure_session(self, context: ChatContext, pending_message: Optional[str] = None):
        """Create the context's session if it has none yet.

        ``pending_message`` is the message about to be prompted; when it is
        already the latest turn in history it is left out of the seed.
        """
        if context.ai_session is not None:
            return context.ai_session

        try:
            capabilities = await self._llm_client.initialize()
        except StatusPollError as e:
            raise GenerationUnavailable("Language model is not reachable", details=e.details) from e
        availability = capabilities.get("available")
        if availability == DOWNLOADING:
            raise GenerationDownloading("Language model is still downloading")
        if availability not in (AVAILABLE, DOWNLOADABLE):
            raise GenerationUnavailable(
                "Language model is not available", details=f"availability={availability}"
            )

        turns = context.recent_turns(self.turns_max + 1)
        if pending_message is not None and turns and turns[-1].role == USER \
                and turns[-1].content == pending_message:
            turns = turns[:-1]
        turns_context = build_turns_context(turns, self.turns_max, self.turns_max_chars)
        context.ai_session = self._llm_client.create_session(
            build_system_prompt(turns_context),
            temperature=self.temperature,
            top_k=self.top_k,
            max_tokens=self.max_tokens,
        )
        logger.info(f"Generation session created for thread {context.thread_id}")
        return context.ai_session

    async def generate(self, context: ChatContext, user_message: str, context_text: str = "") -> str:
        """
        Generate a reply to ``user_message`` with optional retrieved context.

        Raises:
            GenerationError (or a subclass): backend failed or is not ready
        """
        if self._breaker.is_open():
            raise GenerationUnavailable(
                "Language model temporarily unavailable", details="Too many recent failures"
            )

        try:
            session = await self.ensure_session(context, pending_message=user_message)
        except GenerationError:
            raise
        except Exception as e:
            raise classify_generation_error(e) from e

        prompt = build_prompt(user_message, context_text)
        model = getattr(self._llm_client, "model", "") or "default"
        loop = asyncio.get_running_loop()

        for attempt in range(MODEL_RETRY_MAX + 1):
            log_llm(logger, "start", model)
            started = time.time()
            try:
                reply = await asyncio.wait_for(
                    loop.run_in_executor(None, lambda: session.prompt(prompt)),
                    timeout=self.timeout,
                )
                self._breaker.record_success()
                log_llm(logger, "end", model, time.time() - started)
                return reply
            except asyncio.TimeoutError as e:
                self._breaker.record_failure()
                # The worker thread still owns the old session and will write to it
                self.reset(context)
                raise GenerationError(
                    "Language model timed out",
                    details=f"No response after {self.timeout}s",
                    model=model,
                    error_type="timeout",
                ) from e
            except Exception as e:
                self._breaker.record_failure()
                if attempt < MODEL_RETRY_MAX and is_retryable_error(e):
                    delay = self.retry_delay * (2 ** attempt)
                    logger.warning(f"Generation attempt {attempt + 1} failed ({e}), retrying in {delay}s")
                    await asyncio.sleep(delay)
                    continue
                raise classify_generation_error(e, model=model) from e

        raise GenerationError("Generation failed after retries", model=model)

    def reset(self, context: ChatContext) -> None:
        """Discard the context's session; the next turn starts a fresh one."""
        if context.ai_session is not None:
            context.ai_session = None
            logger.info(f"Generation session reset for thread {context.thread_id}")
