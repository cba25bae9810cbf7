"""
Model readiness tracking.

ModelReadinessMonitor polls the generation backend's availability until it is
usable and exposes the resulting state:

    uninitialized -> ready | downloadable | downloading | unavailable

- available/readily/ready ends polling as READY
- downloadable ends polling as usable-while-downloading; the "downloading"
  indicator is hidden after ``optimistic_ready_after_s`` whether or not the
  download actually finished
- downloading keeps polling
- unavailable/no ends polling as UNAVAILABLE
- a failing check is retried; if the budget runs out on a failure the state
  becomes UNAVAILABLE

RemoteWarmWatcher follows a larger remote model warming up behind the local
one and keeps a one-line status text current.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from errors import StatusPollError
from logging_config import log_poll
from services.history_service import ModelStatus
from services.polling import PollDecision, PollHandle, poll_until, EXHAUSTED, FAILED

logger = logging.getLogger(__name__)

STATUS_ERROR_TEXT = "Model status: error retrieving"
STATUS_MISSING_TEXT = "Model status: unavailable"


class ReadinessState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DOWNLOADABLE = "downloadable"
    DOWNLOADING = "downloading"
    UNAVAILABLE = "unavailable"


READY_ANSWERS = {"available", "readily", "ready"}
UNAVAILABLE_ANSWERS = {"unavailable", "no"}


def describe_model_status(status: Optional[ModelStatus]) -> str:
    """One-line, user-facing description of the local/remote model in use."""
    if status is None:
        return STATUS_MISSING_TEXT
    if status.warming:
        text = "Model: warming larger remote model... (using local)"
    elif status.using == "remote":
        text = "Model: Remote (large)"
    else:
        text = "Model: Local (quantized)"
    if status.last_error:
        text += f" - warm-up failed: {status.last_error}"
    return text


class ModelReadinessMonitor:
    """Polls backend availability until the model is usable."""

    def __init__(
        self,
        llm_client,
        initial_delay: float = 1.0,
        interval: float = 2.0,
        max_attempts: int = 60,
        optimistic_ready_after_s: float = 3.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._llm_client = llm_client
        self.initial_delay = initial_delay
        self.interval = interval
        self.max_attempts = max_attempts
        self.optimistic_ready_after_s = optimistic_ready_after_s
        self._sleep = sleep

        self.state = ReadinessState.UNINITIALIZED
        self.indicator_visible = False
        self.timed_out = False
        self.attempts = 0
        self._handle: Optional[PollHandle] = None

    @property
    def is_usable(self) -> bool:
        return self.state in (ReadinessState.READY, ReadinessState.DOWNLOADABLE)

    def start(self) -> PollHandle:
        """Start monitoring in the background; a running monitor is reused."""
        if self._handle is not None and self._handle.running:
            return self._handle
        self._handle = PollHandle.start(self.run(), name="model-readiness")
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.stop()

    async def run(self) -> ReadinessState:
        self.timed_out = False
        result = await poll_until(
            self._check,
            interval=self.interval,
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            name="model-readiness",
            sleep=self._sleep,
        )
        self.attempts = result.attempts

        if result.outcome in (EXHAUSTED, FAILED) and result.last_error is not None:
            self._set_state(ReadinessState.UNAVAILABLE)
        elif result.outcome == EXHAUSTED:
            self.timed_out = True
            if self.state is not ReadinessState.DOWNLOADING:
                self._set_state(ReadinessState.UNAVAILABLE)
            log_poll(logger, "readiness", "timed out", state=self.state.value, attempts=result.attempts)

        if self.state is ReadinessState.DOWNLOADABLE:
            await self._sleep(self.optimistic_ready_after_s)
            self.indicator_visible = False
        elif self.state is not ReadinessState.DOWNLOADING:
            self.indicator_visible = False

        return self.state

    async def _check(self) -> PollDecision:
        answer = str(await self._llm_client.availability()).lower()

        if answer in READY_ANSWERS:
            self._set_state(ReadinessState.READY)
            return PollDecision.DONE
        if answer == "downloadable":
            self._set_state(ReadinessState.DOWNLOADABLE)
            self.indicator_visible = True
            return PollDecision.DONE
        if answer == "downloading":
            self._set_state(ReadinessState.DOWNLOADING)
            self.indicator_visible = True
            return PollDecision.CONTINUE
        if answer in UNAVAILABLE_ANSWERS:
            self._set_state(ReadinessState.UNAVAILABLE)
            return PollDecision.FAIL

        logger.warning(f"Unknown availability answer: {answer!r}")
        return PollDecision.CONTINUE

    def _set_state(self, state: ReadinessState) -> None:
        if state is not self.state:
            log_poll(logger, "readiness", f"{self.state.value} -> {state.value}")
            self.state = state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "indicator_visible": self.indicator_visible,
            "timed_out": self.timed_out,
            "attempts": self.attempts,
        }


class RemoteWarmWatcher:
    """
    Follows remote model warm-up after the preference is enabled.

    Polls model status every ``interval`` seconds and stops when warming
    finishes, the remote model takes over, no status is reported, a poll
    fails, or ``timeout`` elapses. Only one watch runs at a time.
    """

    def __init__(
        self,
        history_client,
        interval: float = 2.0,
        timeout: float = 120.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = history_client
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep
        self.status_text = describe_model_status(None)
        self.last_status: Optional[ModelStatus] = None
        self._handle: Optional[PollHandle] = None

    @property
    def watching(self) -> bool:
        return self._handle is not None and self._handle.running

    async def enable(self, prefs: Optional[Dict[str, Any]] = None) -> PollHandle:
        """Push the preference, ask for a warm-up, and watch it."""
        await self._client.refresh_prefs(prefs)
        await self._client.start_remote_warm()
        log_poll(logger, "remote-warm", "requested")
        return self.start()

    def start(self) -> PollHandle:
        if self.watching:
            return self._handle
        self._handle = PollHandle.start(self.run(), name="remote-warm")
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.stop()

    async def run(self):
        result = await poll_until(
            self._tick,
            interval=self.interval,
            timeout=self.timeout,
            name="remote-warm",
            sleep=self._sleep,
        )
        log_poll(logger, "remote-warm", result.outcome, attempts=result.attempts)
        return result

    async def refresh(self) -> str:
        """Fetch status once and update the status text."""
        try:
            status = await self._client.get_model_status()
        except StatusPollError as e:
            logger.warning(f"Model status unavailable: {e}")
            self.status_text = STATUS_ERROR_TEXT
            raise
        self.last_status = status
        self.status_text = describe_model_status(status)
        return self.status_text

    async def _tick(self) -> PollDecision:
        try:
            await self.refresh()
        except StatusPollError:
            return PollDecision.FAIL

        status = self.last_status
        if status is None or not status.warming or status.using == "remote":
            return PollDecision.DONE
        return PollDecision.CONTINUE
