"""
Tests for chat persistence: ChatStore (in-memory Redis fallback) and the
ChatContext-facing SessionStore.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeHistoryClient, FakeLLMClient, make_record, memory_store
from errors import ErrorCode, PersistenceError
from routers.chat_orchestration import ChatContext, ChatTurn, ResponseGenerator, SearchMetadata, SessionStore
from services.chat_store import ChatStore, find_duplicates


def _turn(role, content, ts, turn_id=None):
    return {"id": turn_id or f"{role}-{ts}", "thread_id": "t1", "role": role, "content": content, "timestamp": ts}


class TestFindDuplicates:
    """Test the duplicate rule."""

    def test_same_content_within_window(self):
        """Repeated role and text inside the window is a duplicate."""
        turns = [_turn("user", "Hello", 100), _turn("user", "hello ", 102)]
        assert find_duplicates(turns, 5) == [1]

    def test_outside_window_kept(self):
        """The same text later than the window is kept."""
        turns = [_turn("user", "hello", 100), _turn("user", "hello", 110)]
        assert find_duplicates(turns, 5) == []

    def test_repeated_id(self):
        """A reused id is always a duplicate."""
        turns = [_turn("user", "a", 100, "x"), _turn("assistant", "b", 101), _turn("user", "a", 200, "x")]
        assert find_duplicates(turns, 5) == [2]

    def test_idempotent(self):
        """Running again over the kept turns finds nothing."""
        turns = [_turn("user", "hi", 100), _turn("user", "hi", 101), _turn("user", "hi", 102)]
        duplicates = set(find_duplicates(turns, 5))
        kept = [t for i, t in enumerate(turns) if i not in duplicates]
        assert find_duplicates(kept, 5) == []


class TestChatStore:
    """Test thread storage over the in-memory Redis fallback."""

    def test_save_and_load(self):
        """Saved turns come back oldest first with their ids."""
        store = memory_store()

        async def run():
            first = await store.save_turn(_turn("user", "q", 1))
            await store.save_turn(_turn("assistant", "a", 2))
            return first, await store.get_turns("t1", 10)

        first, result = asyncio.run(run())
        assert first == {"message_id": "user-1"}
        assert [m["content"] for m in result["messages"]] == ["q", "a"]

    def test_limit_returns_most_recent(self):
        """get_turns returns the last ``limit`` turns."""
        store = memory_store()

        async def run():
            for i in range(5):
                await store.save_turn(_turn("user", f"m{i}", i * 10))
            return await store.get_turns("t1", 2)

        assert [m["content"] for m in asyncio.run(run())["messages"]] == ["m3", "m4"]

    def test_trimmed_to_max_stored(self):
        """Older turns beyond max_stored are dropped."""
        store = memory_store(max_stored=3)

        async def run():
            for i in range(5):
                await store.save_turn(_turn("user", f"m{i}", i * 10))
            return await store.get_turns("t1", 10)

        assert [m["content"] for m in asyncio.run(run())["messages"]] == ["m2", "m3", "m4"]

    def test_save_without_thread(self):
        """A turn without thread_id cannot be stored."""
        with pytest.raises(PersistenceError):
            asyncio.run(memory_store().save_turn({"role": "user", "content": "x"}))

    def test_clear(self):
        """Clearing removes every turn."""
        store = memory_store()

        async def run():
            await store.save_turn(_turn("user", "q", 1))
            await store.clear_thread("t1")
            return await store.get_turns("t1")

        assert asyncio.run(run())["messages"] == []

    def test_deduplicate(self):
        """Duplicates are removed in place and the count reported."""
        store = memory_store()

        async def run():
            await store.save_turn(_turn("user", "q", 1))
            await store.save_turn(_turn("user", "q", 2))
            first = await store.deduplicate("t1")
            second = await store.deduplicate("t1")
            return first, second, await store.get_turns("t1")

        first, second, result = asyncio.run(run())
        assert first == {"removed_count": 1}
        assert second == {"removed_count": 0}
        assert len(result["messages"]) == 1

    def test_backend_failure(self):
        """Backend errors surface as PersistenceError with the operation code."""
        redis = MagicMock()
        redis.lrange = AsyncMock(side_effect=RuntimeError("down"))
        store = ChatStore(redis=redis)
        with pytest.raises(PersistenceError) as exc:
            asyncio.run(store.get_turns("t1"))
        assert exc.value.code == ErrorCode.PERSISTENCE_LOAD_FAILED


class TestSessionStore:
    """Test load/append/clear against a ChatContext."""

    def _seed(self, store):
        metadata = SearchMetadata(keywords=["github", "pull request"], original_query="find my github pull request")

        async def run():
            await store.save_turn(ChatTurn(thread_id="t1", role="user", content="find my github pull request",
                                           timestamp=1).to_dict())
            await store.save_turn(ChatTurn(thread_id="t1", role="assistant", content="Found it",
                                           search_metadata=metadata, timestamp=2).to_dict())

        asyncio.run(run())

    def test_reload_regenerates_links(self):
        """Reload re-runs the stored query to rebuild links, without writing."""
        store = memory_store()
        self._seed(store)
        history = FakeHistoryClient(results=[make_record(0.8, url="https://github.com/pr/1")])
        session_store = SessionStore(store, history_client=history)
        context = ChatContext(thread_id="t1")

        turns = asyncio.run(session_store.load_recent(context, 10))

        assert [t.role for t in turns] == ["user", "assistant"]
        assert history.search_calls[0]["query"] == "github pull request"
        assert turns[1].links[0]["url"] == "https://github.com/pr/1"
        assert context.last_search_query == "github pull request"
        assert context.last_links == turns[1].links
        assert len(asyncio.run(store.get_turns("t1", 50))["messages"]) == 2

    def test_reload_search_failure(self):
        """A failed regeneration search leaves that turn without links."""
        store = memory_store()
        self._seed(store)
        history = FakeHistoryClient(search_error=RuntimeError("down"))
        turns = asyncio.run(SessionStore(store, history_client=history).load_recent(ChatContext(thread_id="t1")))
        assert turns[1].links == []

    def test_append_atomic(self):
        """A failed save leaves the in-memory history untouched."""
        store = MagicMock()
        store.save_turn = AsyncMock(side_effect=RuntimeError("down"))
        context = ChatContext(thread_id="t1")

        with pytest.raises(PersistenceError):
            asyncio.run(SessionStore(store).append(context, ChatTurn(thread_id="t1", role="user", content="x")))
        assert context.chat_history == []

    def test_append_success(self):
        """A saved turn is added to the history."""
        context = ChatContext(thread_id="t1")
        turn = ChatTurn(thread_id="t1", role="user", content="x")
        message_id = asyncio.run(SessionStore(memory_store()).append(context, turn))
        assert message_id == turn.id
        assert context.chat_history == [turn]

    def test_clear_resets_state(self):
        """Clear wipes storage, history, last search and the session."""
        store = memory_store()
        self._seed(store)
        generator = ResponseGenerator(FakeLLMClient())
        context = ChatContext(thread_id="t1", last_search_query="q", ai_session=object())
        session_store = SessionStore(store, generator=generator)

        asyncio.run(session_store.clear(context))

        assert context.chat_history == []
        assert context.last_search_query == ""
        assert context.ai_session is None
        assert asyncio.run(store.get_turns("t1"))["messages"] == []

    def test_load_dedupes_first(self):
        """Duplicates are removed before the window is loaded."""
        store = memory_store()

        async def run():
            await store.save_turn(_turn("user", "q", 1))
            await store.save_turn(_turn("user", "q", 2))

        asyncio.run(run())
        turns = asyncio.run(SessionStore(store).load_recent(ChatContext(thread_id="t1")))
        assert len(turns) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
