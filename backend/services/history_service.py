"""
History Service Client - async HTTP client for the browsing-history backend.

The history service owns page ingestion, summarization, ranking and model
management. This client covers the narrow surface the chat pipeline needs:

- search(query, mode, limit, offset) -> ranked SearchRecords
- get_model_status() / start_remote_warm() / refresh_prefs()
- get_summary_queue_stats() / get_ingestion_stats()

Record fields are normalized once here (score aliases, visit timestamps) so
the rest of the pipeline reads a single shape.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from errors import SearchError, StatusPollError

logger = logging.getLogger(__name__)

# Score may arrive under any of these keys depending on ranking mode
SCORE_KEYS = ("score", "similarity", "finalScore", "final_score")

# Connection retry backoff (seconds)
RETRY_INITIAL_DELAY = 0.2
RETRY_BACKOFF_FACTOR = 1.5
RETRY_MAX_DELAY = 1.0

# Epoch values above this are milliseconds
_MS_EPOCH_THRESHOLD = 1e11


def _first_present(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _parse_visit_time(value: Any) -> Optional[datetime]:
    """Normalize epoch ms, epoch seconds or ISO-8601 into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > _MS_EPOCH_THRESHOLD else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return _parse_visit_time(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable visit time: {value!r}")
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _parse_score(raw: Dict[str, Any]) -> float:
    value = _first_present(raw, *SCORE_KEYS)
    try:
        score = float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(score):
        return 0.0
    return max(0.0, min(1.0, score))


@dataclass
class SearchRecord:
    """One ranked browsing-history result."""

    url: str
    title: str = ""
    domain: str = ""
    score: float = 0.0
    summary: str = ""
    snippet: str = ""
    visit_count: int = 0
    last_visit_at: Optional[datetime] = None
    favicon_url: str = ""

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "SearchRecord":
        url = raw.get("url") or ""
        domain = raw.get("domain") or urlparse(url).netloc
        visit_count = _first_present(raw, "visit_count", "visitCount")
        try:
            visit_count = int(visit_count or 0)
        except (TypeError, ValueError):
            visit_count = 0

        return cls(
            url=url,
            title=raw.get("title") or url,
            domain=domain,
            score=_parse_score(raw),
            summary=raw.get("summary") or "",
            snippet=raw.get("snippet") or raw.get("text") or "",
            visit_count=visit_count,
            last_visit_at=_parse_visit_time(
                _first_present(raw, "last_visit_at", "lastVisitAt", "last_visit_time", "lastVisitTime")
            ),
            favicon_url=_first_present(raw, "favicon_url", "faviconUrl", "favicon") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_visit_at"] = self.last_visit_at.isoformat() if self.last_visit_at else None
        return data


@dataclass
class ModelStatus:
    """Local/remote model warm-up status reported by the history service."""

    warming: bool = False
    using: str = "local"
    last_error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelStatus":
        using = str(data.get("using") or "local").lower()
        return cls(
            warming=bool(data.get("warming", False)),
            using="remote" if using == "remote" else "local",
            last_error=_first_present(data, "last_error", "lastError") or None,
        )


@dataclass
class QueueStats:
    """Summarization or ingestion queue counters."""

    is_processing: bool = False
    queue_length: int = 0
    completed: int = 0
    failed: int = 0
    currently_processing: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueStats":
        current = _first_present(data, "currently_processing", "currentlyProcessing")
        if isinstance(current, dict):
            current = current.get("title") or current.get("url")
        return cls(
            is_processing=bool(_first_present(data, "is_processing", "isProcessing")),
            queue_length=int(_first_present(data, "queue_length", "queueLength") or 0),
            completed=int(data.get("completed") or 0),
            failed=int(data.get("failed") or 0),
            currently_processing=current or None,
            extra={k: v for k, v in data.items() if k not in _QUEUE_KNOWN_KEYS},
        )

    @classmethod
    def combine(cls, *stats: "QueueStats") -> "QueueStats":
        """Merge several queues into one view (any processing, summed counters)."""
        current = next((s.currently_processing for s in stats if s.currently_processing), None)
        return cls(
            is_processing=any(s.is_processing for s in stats),
            queue_length=sum(s.queue_length for s in stats),
            completed=sum(s.completed for s in stats),
            failed=sum(s.failed for s in stats),
            currently_processing=current,
        )


_QUEUE_KNOWN_KEYS = {
    "is_processing", "isProcessing", "queue_length", "queueLength",
    "completed", "failed", "currently_processing", "currentlyProcessing",
}


class HistoryServiceClient:
    """Async client for the browsing-history service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_initial_delay: float = RETRY_INITIAL_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: History service URL (e.g., "http://localhost:8090")
            timeout: Request timeout in seconds
            max_retries: Retries on connection-level failures only
            retry_initial_delay: First backoff delay in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_initial_delay = retry_initial_delay
        self._transport = transport

    async def _request(self, method: str, path: str, json: Optional[Dict] = None) -> Any:
        """Send a request, retrying only when the connection itself fails."""
        delay = self._retry_initial_delay
        attempt = 0
        while True:
            try:
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    resp = await client.request(method, f"{self.base_url}{path}", json=json)
                    resp.raise_for_status()
                    return resp.json() if resp.content else None
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                if attempt >= self._max_retries:
                    raise
                attempt += 1
                logger.debug(f"History service unreachable ({e}), retry {attempt} in {delay:.2f}s")
                await asyncio.sleep(delay)
                delay = min(delay * RETRY_BACKOFF_FACTOR, RETRY_MAX_DELAY)

    # === Search ===

    async def search(
        self,
        query: str,
        mode: str = "hybrid-rerank",
        limit: int = 25,
        offset: int = 0,
    ) -> List[SearchRecord]:
        """
        Run a ranked history search.

        Raises:
            SearchError: transport failure, HTTP error, or an error payload
        """
        body = {"query": query, "mode": mode, "limit": limit, "offset": offset}
        try:
            payload = await self._request("POST", "/search", json=body)
        except httpx.HTTPStatusError as e:
            raise SearchError(
                "History search failed",
                details=str(e),
                query=query,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise SearchError(
                "History service unreachable", details=str(e), query=query, error_type="network"
            ) from e
        except ValueError as e:
            raise SearchError("Invalid search payload", details=str(e), query=query) from e

        payload = payload or {}
        if payload.get("error"):
            raise SearchError("History search failed", details=str(payload["error"]), query=query)

        return [SearchRecord.from_raw(raw) for raw in payload.get("results") or []]

    # === Model status ===

    async def get_model_status(self) -> Optional[ModelStatus]:
        """Current warm-up status, or None when the service reports none."""
        payload = await self._status_call("GET", "/model/status")
        if not payload:
            return None
        status = payload.get("status", payload) if isinstance(payload, dict) else None
        return ModelStatus.from_dict(status) if status else None

    async def start_remote_warm(self) -> Dict[str, Any]:
        return await self._status_call("POST", "/model/remote-warm") or {}

    async def refresh_prefs(self, prefs: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._status_call("POST", "/prefs/refresh", json=prefs or {}) or {}

    # === Queue status ===

    async def get_summary_queue_stats(self) -> QueueStats:
        payload = await self._status_call("GET", "/queue/summary") or {}
        return QueueStats.from_dict(payload.get("stats") or payload)

    async def get_ingestion_stats(self) -> QueueStats:
        payload = await self._status_call("GET", "/queue/ingestion") or {}
        return QueueStats.from_dict(payload.get("stats") or payload)

    async def _status_call(self, method: str, path: str, json: Optional[Dict] = None) -> Any:
        try:
            return await self._request(method, path, json=json)
        except httpx.HTTPError as e:
            raise StatusPollError(f"Status call failed: {method} {path}", details=str(e), endpoint=path) from e
        except ValueError as e:
            raise StatusPollError(f"Invalid status payload: {path}", details=str(e), endpoint=path) from e


# Singleton instance
_history_client: Optional[HistoryServiceClient] = None


def get_history_client() -> HistoryServiceClient:
    """Get history service client singleton."""
    global _history_client
    if _history_client is None:
        from config import runtime_config
        _history_client = HistoryServiceClient(
            base_url=runtime_config.history_service_url,
            timeout=runtime_config.history_service_timeout_s,
            max_retries=runtime_config.history_retry_max,
        )
    return _history_client
