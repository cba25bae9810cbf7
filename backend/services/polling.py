"""
Polling primitives shared by the background monitors.

poll_until() drives a check coroutine on a fixed interval until it reports
DONE or FAIL, or until an attempt count or elapsed-time budget runs out.
Exceptions raised by the check are logged and treated as "keep polling";
the last one is kept on the result so callers can decide what an exhausted
budget means.

PollHandle wraps the asyncio task running a monitor so it can be stopped.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PollDecision(Enum):
    CONTINUE = "continue"
    DONE = "done"
    FAIL = "fail"


# PollResult.outcome values
DONE = "done"
FAILED = "failed"
EXHAUSTED = "exhausted"
TIMED_OUT = "timed_out"


@dataclass
class PollResult:
    outcome: str
    attempts: int
    last_error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == DONE


async def poll_until(
    check: Callable[[], Awaitable[PollDecision]],
    interval: float,
    max_attempts: Optional[int] = None,
    timeout: Optional[float] = None,
    initial_delay: float = 0.0,
    name: str = "poll",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollResult:
    """
    Run ``check`` every ``interval`` seconds until it decides DONE or FAIL.

    Args:
        check: Coroutine function returning a PollDecision
        interval: Seconds between checks
        max_attempts: Stop after this many checks (None = unbounded)
        timeout: Stop once this many seconds have elapsed since the first check
        initial_delay: Seconds to wait before the first check
        name: Label for log lines
        sleep/clock: Injectable for tests

    Returns:
        PollResult with the outcome and number of checks made
    """
    if initial_delay > 0:
        await sleep(initial_delay)

    started = clock()
    attempts = 0
    last_error: Optional[BaseException] = None

    while True:
        attempts += 1
        try:
            decision = await check()
            last_error = None
        except Exception as e:
            logger.warning(f"[{name}] check failed (attempt {attempts}): {e}")
            decision = PollDecision.CONTINUE
            last_error = e

        if decision is PollDecision.DONE:
            return PollResult(DONE, attempts)
        if decision is PollDecision.FAIL:
            return PollResult(FAILED, attempts, last_error)

        if max_attempts is not None and attempts >= max_attempts:
            logger.info(f"[{name}] gave up after {attempts} attempts")
            return PollResult(EXHAUSTED, attempts, last_error)
        if timeout is not None and clock() - started + interval > timeout:
            logger.info(f"[{name}] timed out after {clock() - started:.1f}s")
            return PollResult(TIMED_OUT, attempts, last_error)

        await sleep(interval)


class PollHandle:
    """Stoppable handle over a running monitor task."""

    def __init__(self, task: "asyncio.Task", name: str = "poll"):
        self._task = task
        self.name = name

    @classmethod
    def start(cls, coro, name: str = "poll") -> "PollHandle":
        return cls(asyncio.create_task(coro, name=name), name=name)

    @property
    def running(self) -> bool:
        return not self._task.done()

    def stop(self) -> None:
        if not self._task.done():
            self._task.cancel()
            logger.debug(f"[{self.name}] stopped")

    async def wait(self) -> Any:
        """Wait for the task; returns its result, or None if it was stopped."""
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._task.cancelled():
                return None
            raise
