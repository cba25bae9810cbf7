"""
Chat Store - Redis-backed chat thread persistence.

Each thread is a Redis list of JSON-encoded turns, oldest first, trimmed to
the most recent ``max_stored`` entries on every save.

Key pattern: histchat:thread:{thread_id}

Usage:
    from services.chat_store import get_chat_store

    store = await get_chat_store()
    await store.save_turn(turn.to_dict())
    recent = await store.get_turns(thread_id, limit=10)
"""

import json
import logging
import re
import uuid
from typing import Optional, Dict, Any, List

from errors import PersistenceError

logger = logging.getLogger(__name__)

THREAD_PREFIX = "histchat:thread:"

_WHITESPACE = re.compile(r"\s+")


def _normalize_content(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip().lower()


def find_duplicates(turns: List[Dict[str, Any]], window_s: float) -> List[int]:
    """
    Return indices of duplicate turns.

    A turn is a duplicate when it reuses the id of a kept turn, or when it has
    the same role and normalized content as the last kept turn and was stored
    within ``window_s`` seconds of it. Comparing against kept turns only makes
    a second pass over the kept list find nothing.
    """
    duplicates = []
    seen_ids = set()
    last_kept: Optional[Dict[str, Any]] = None

    for index, turn in enumerate(turns):
        turn_id = turn.get("id")
        if turn_id and turn_id in seen_ids:
            duplicates.append(index)
            continue

        if last_kept is not None and turn.get("role") == last_kept.get("role"):
            same_text = _normalize_content(turn.get("content", "")) == _normalize_content(
                last_kept.get("content", "")
            )
            gap = abs(float(turn.get("timestamp") or 0) - float(last_kept.get("timestamp") or 0))
            if same_text and gap <= window_s:
                duplicates.append(index)
                continue

        if turn_id:
            seen_ids.add(turn_id)
        last_kept = turn

    return duplicates


class ChatStore:
    """
    Redis-backed chat thread persistence.

    Operations return plain dicts (``{"message_id"}``, ``{"messages"}``,
    ``{"removed_count"}``) and raise PersistenceError on failure.
    """

    def __init__(self, max_stored: int = 50, dedupe_window_s: float = 5.0, redis=None):
        """
        Args:
            max_stored: Turns kept per thread (older ones are trimmed)
            dedupe_window_s: Max gap between two identical turns to count as duplicates
            redis: Optional RedisManager (resolved lazily from the singleton otherwise)
        """
        self.max_stored = max_stored
        self.dedupe_window_s = dedupe_window_s
        self._redis = redis

    async def _get_redis(self):
        """Lazy load Redis manager."""
        if self._redis is None:
            from .redis_client import get_redis
            self._redis = await get_redis()
        return self._redis

    def _make_key(self, thread_id: str) -> str:
        return f"{THREAD_PREFIX}{thread_id}"

    async def save_turn(self, turn: Dict[str, Any]) -> Dict[str, str]:
        """
        Append one turn to its thread.

        Args:
            turn: Serialized ChatTurn (must carry thread_id)

        Returns:
            {"message_id": id}
        """
        thread_id = turn.get("thread_id")
        if not thread_id:
            raise PersistenceError("Cannot save turn without thread_id", operation="save")

        message_id = turn.get("id") or uuid.uuid4().hex
        record = {**turn, "id": message_id}

        redis = await self._get_redis()
        key = self._make_key(thread_id)
        try:
            await redis.rpush(key, json.dumps(record))
            await redis.ltrim(key, -self.max_stored, -1)
        except Exception as e:
            raise PersistenceError(
                "Failed to save chat turn", details=str(e), operation="save", thread_id=thread_id
            ) from e

        logger.debug(f"Turn saved: {thread_id}/{message_id} ({record.get('role')})")
        return {"message_id": message_id}

    async def get_turns(self, thread_id: str, limit: int = 10) -> Dict[str, List[Dict[str, Any]]]:
        """
        Load the most recent turns of a thread, oldest first.

        Returns:
            {"messages": [turn_dict, ...]}
        """
        redis = await self._get_redis()
        key = self._make_key(thread_id)
        try:
            raw = await redis.lrange(key, -limit, -1) if limit > 0 else []
            messages = [json.loads(item) for item in raw]
        except Exception as e:
            raise PersistenceError(
                "Failed to load chat turns", details=str(e), operation="load", thread_id=thread_id
            ) from e
        return {"messages": messages}

    async def clear_thread(self, thread_id: str) -> bool:
        """Delete every turn of a thread."""
        redis = await self._get_redis()
        try:
            await redis.delete(self._make_key(thread_id))
        except Exception as e:
            raise PersistenceError(
                "Failed to clear thread", details=str(e), operation="clear", thread_id=thread_id
            ) from e
        logger.info(f"Thread cleared: {thread_id}")
        return True

    async def deduplicate(self, thread_id: str) -> Dict[str, int]:
        """
        Remove duplicate turns from a thread in place.

        Returns:
            {"removed_count": n}
        """
        redis = await self._get_redis()
        key = self._make_key(thread_id)
        try:
            raw = await redis.lrange(key, 0, -1)
            turns = [json.loads(item) for item in raw]
            duplicates = set(find_duplicates(turns, self.dedupe_window_s))
            if duplicates:
                kept = [item for index, item in enumerate(raw) if index not in duplicates]
                await redis.replace_list(key, kept)
        except Exception as e:
            raise PersistenceError(
                "Failed to deduplicate thread", details=str(e), operation="save", thread_id=thread_id
            ) from e

        if duplicates:
            logger.info(f"Removed {len(duplicates)} duplicate turns from {thread_id}")
        return {"removed_count": len(duplicates)}


# Singleton instance
_chat_store: Optional[ChatStore] = None


async def get_chat_store() -> ChatStore:
    """Get chat store singleton."""
    global _chat_store
    if _chat_store is None:
        from config import runtime_config
        _chat_store = ChatStore(
            max_stored=runtime_config.history_max_stored,
            dedupe_window_s=runtime_config.dedupe_window_s,
        )
    return _chat_store
