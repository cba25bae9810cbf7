"""
Session store - chat history continuity for a ChatContext.

Wraps the ChatStore persistence collaborator:
- load_recent() deduplicates the thread, loads the recent window, and
  re-runs the search behind each search-backed assistant turn to rebuild
  its link list (metadata is only read, never written back)
- append() stores a turn and only then adds it to the in-memory history
- clear() wipes the thread and drops the generation session
"""

import logging
from typing import Dict, List, Optional

from errors import PersistenceError

from .links import build_link_list
from .session import ChatContext, ChatTurn, ASSISTANT

logger = logging.getLogger(__name__)


class SessionStore:
    """ChatContext-facing persistence with link regeneration on reload."""

    def __init__(self, chat_store, history_client=None, generator=None,
                 search_mode: str = "hybrid-rerank", page_size: int = 25, link_limit: int = 5):
        self._store = chat_store
        self._history_client = history_client
        self._generator = generator
        self.search_mode = search_mode
        self.page_size = page_size
        self.link_limit = link_limit

    async def deduplicate(self, thread_id: str) -> Dict[str, int]:
        return await self._store.deduplicate(thread_id)

    async def load_recent(self, context: ChatContext, limit: int = 10) -> List[ChatTurn]:
        """
        Replace ``context.chat_history`` with the thread's most recent turns.

        Raises:
            PersistenceError: storage failed
        """
        result = await self.deduplicate(context.thread_id)
        if result.get("removed_count"):
            logger.info(f"Deduplicated {result['removed_count']} turns in {context.thread_id}")

        payload = await self._store.get_turns(context.thread_id, limit)
        turns = [ChatTurn.from_dict(raw) for raw in payload.get("messages", [])]

        for turn in turns:
            if turn.role == ASSISTANT and turn.search_metadata is not None:
                turn.links = await self._regenerate_links(turn)

        context.chat_history = turns
        last_search = next(
            (t for t in reversed(turns) if t.search_metadata is not None), None
        )
        if last_search is not None:
            context.last_search_query = last_search.search_metadata.search_query
            context.last_links = list(last_search.links)

        logger.info(f"Loaded {len(turns)} turns for {context.thread_id}")
        return turns

    async def append(self, context: ChatContext, turn: ChatTurn) -> str:
        """
        Persist a turn, then add it to the in-memory history.

        Raises:
            PersistenceError: storage failed; history is left unchanged
        """
        try:
            result = await self._store.save_turn(turn.to_dict())
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                "Failed to save chat turn", details=str(e), operation="save", thread_id=context.thread_id
            ) from e

        turn.id = result.get("message_id") or turn.id
        context.chat_history.append(turn)
        return turn.id

    async def clear(self, context: ChatContext) -> None:
        """
        Raises:
            PersistenceError: storage failed; in-memory state is left unchanged
        """
        await self._store.clear_thread(context.thread_id)
        context.chat_history = []
        context.last_search_query = ""
        context.last_links = []
        if self._generator is not None:
            self._generator.reset(context)
        else:
            context.ai_session = None

    async def _regenerate_links(self, turn: ChatTurn) -> List[Dict[str, str]]:
        query: Optional[str] = turn.search_metadata.search_query
        if not query or self._history_client is None:
            return []
        try:
            records = await self._history_client.search(
                query, mode=self.search_mode, limit=self.page_size, offset=0
            )
        except Exception as e:
            logger.warning(f"Link regeneration failed for '{query}': {e}")
            return []
        return build_link_list(records, self.link_limit)
