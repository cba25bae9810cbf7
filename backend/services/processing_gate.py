"""
Processing gate - tracks whether background page processing is busy.

The flag combines the summarization and ingestion queues:

    is_processing = any queue is processing OR any queue has pending items

It is refreshed by polling and by push events from the history service.
When processing goes from busy to idle while a search query is active, the
last query is re-run after a short settle delay so replies can pick up newly
indexed pages. Whether a busy gate blocks chat input is a user preference;
by default the gate is informational only.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from logging_config import log_poll
from services.history_service import QueueStats
from services.polling import PollDecision, PollHandle, poll_until

logger = logging.getLogger(__name__)

# Push events that mean work was just queued
QUEUED_EVENTS = {"navigation_started", "page_queued"}


class ProcessingGateMonitor:
    """Polls queue stats and reacts to processing push events."""

    def __init__(
        self,
        history_client,
        interval: float = 2.0,
        settle_delay: float = 1.0,
        recheck_delay: float = 0.1,
        input_policy: Optional[Callable[[], bool]] = None,
        has_active_query: Optional[Callable[[], bool]] = None,
        on_idle: Optional[Callable[[], Awaitable[Any]]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            history_client: HistoryServiceClient (or compatible) for queue stats
            interval: Seconds between polls
            settle_delay: Wait before re-running the query after going idle
            recheck_delay: Wait before re-polling after a processing event
            input_policy: Returns True when a busy gate should block input
            has_active_query: Returns True when a search query is active
            on_idle: Coroutine function that silently re-runs the active query
        """
        self._client = history_client
        self.interval = interval
        self.settle_delay = settle_delay
        self.recheck_delay = recheck_delay
        self._input_policy = input_policy or (lambda: False)
        self._has_active_query = has_active_query or (lambda: False)
        self._on_idle = on_idle
        self._sleep = sleep

        self.is_processing = False
        self.stats = QueueStats()
        self._handle: Optional[PollHandle] = None
        self._pending: Set[asyncio.Task] = set()

    # === State ===

    @property
    def input_blocked(self) -> bool:
        return self.is_processing and bool(self._input_policy())

    @property
    def status_text(self) -> str:
        if not self.is_processing:
            return ""
        text = f"Queued: {self.stats.queue_length}"
        if self.stats.completed > 0:
            text += f", Completed: {self.stats.completed}"
        if self.stats.failed > 0:
            text += f", Failed: {self.stats.failed}"
        if self.stats.currently_processing:
            text += f" | Processing: {self.stats.currently_processing}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_processing": self.is_processing,
            "input_blocked": self.input_blocked,
            "queue_length": self.stats.queue_length,
            "status_text": self.status_text,
        }

    def _set_processing(self, processing: bool) -> None:
        was_processing = self.is_processing
        self.is_processing = processing

        if was_processing != processing:
            log_poll(logger, "gate", "processing" if processing else "idle")

        if was_processing and not processing and self._on_idle and self._has_active_query():
            self._schedule(self._rerun_after_settle())

    # === Polling ===

    async def check(self) -> bool:
        """Fetch both queues once and update the flag."""
        summary, ingestion = await asyncio.gather(
            self._client.get_summary_queue_stats(),
            self._client.get_ingestion_stats(),
        )
        self.stats = QueueStats.combine(summary, ingestion)
        self._set_processing(self.stats.is_processing or self.stats.queue_length > 0)
        return self.is_processing

    def start(self) -> PollHandle:
        """Start polling in the background; a running monitor is reused."""
        if self._handle is not None and self._handle.running:
            return self._handle
        self._handle = PollHandle.start(self.run(), name="processing-gate")
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.stop()
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()

    async def run(self):
        return await poll_until(self._tick, interval=self.interval, name="processing-gate", sleep=self._sleep)

    async def _tick(self) -> PollDecision:
        await self.check()
        return PollDecision.CONTINUE

    # === Push events ===

    def handle_status_update(self, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        """React to a processing status push event."""
        if event in QUEUED_EVENTS:
            if not self.is_processing:
                self._set_processing(True)
        elif event == "processing_started":
            self._set_processing(True)
            self._schedule(self._recheck_soon())
        elif event == "processing_completed":
            self._schedule(self._recheck_soon())
        else:
            logger.debug(f"Ignoring status event: {event}")

    def handle_content_indexed(self, data: Optional[Dict[str, Any]] = None) -> None:
        """A page finished indexing; a completed index clears the flag early."""
        data = data or {}
        if data.get("indexing_complete") or data.get("indexingComplete"):
            self._set_processing(False)

    # === Internal ===

    def _schedule(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _recheck_soon(self) -> None:
        await self._sleep(self.recheck_delay)
        try:
            await self.check()
        except Exception as e:
            logger.warning(f"Queue re-check failed: {e}")

    async def _rerun_after_settle(self) -> None:
        await self._sleep(self.settle_delay)
        log_poll(logger, "gate", "re-running active query")
        try:
            await self._on_idle()
        except Exception as e:
            logger.warning(f"Query re-run after processing failed: {e}")

    async def drain(self) -> None:
        """Wait for scheduled re-checks and re-runs to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
