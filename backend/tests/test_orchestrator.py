"""
End-to-end tests for one chat turn through the SearchOrchestrator.

Real pipeline components; fake history service, LLM backend and keyword
extractor; in-memory chat store.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeExtractor, FakeHistoryClient, FakeLLMClient, make_record, memory_store
from errors import IntentExtractionError, PersistenceError, SearchError
from routers.chat_orchestration import (
    ChatContext,
    ContextBuilder,
    IntentClassifier,
    QualityAnalyzer,
    ResponseGenerator,
    SearchOrchestrator,
    SessionStore,
)
from routers.chat_orchestration.prompts import NO_RESULTS_SENTINEL


def build_orchestrator(keywords=None, results=None, search_error=None, extractor=None,
                       llm_client=None, gate=None, session_store=None):
    history = FakeHistoryClient(results=results, search_error=search_error)
    llm = llm_client or FakeLLMClient()
    store = memory_store()
    generator = ResponseGenerator(llm, retry_delay=0)
    session_store = session_store or SessionStore(store, history_client=history, generator=generator)
    orchestrator = SearchOrchestrator(
        IntentClassifier(extractor or FakeExtractor(keywords=keywords)),
        history,
        QualityAnalyzer(),
        ContextBuilder(),
        generator,
        session_store,
        gate=gate,
    )
    return orchestrator, history, llm, store


class TestChatTurns:
    """Test non-search and search turns."""

    def test_not_a_search(self):
        """Open chat skips search and sends the bare message."""
        orchestrator, history, llm, store = build_orchestrator(keywords=[])
        context = ChatContext(thread_id="t1")

        turn = asyncio.run(orchestrator.handle_turn("thanks, that helps", context))

        assert history.search_calls == []
        assert llm.sessions[0].prompts == ["thanks, that helps"]
        assert turn.quality == "none"
        assert turn.search_metadata is None
        assert turn.links == []

    def test_high_quality_search(self):
        """A strong first hit yields one high-confidence block and links."""
        records = [
            make_record(0.72, title="Fix login bug · Pull Request #42", url="https://github.com/org/repo/pull/42"),
            make_record(0.2, title="GitHub", url="https://github.com/"),
        ]
        orchestrator, history, llm, store = build_orchestrator(
            keywords=["github", "pull request"], results=records
        )
        context = ChatContext(thread_id="t1")

        turn = asyncio.run(orchestrator.handle_turn("find my github pull request", context))

        assert history.search_calls[0]["query"] == "github pull request"
        assert history.search_calls[0]["mode"] == "hybrid-rerank"
        prompt = llm.sessions[0].prompts[0]
        assert prompt.count("high confidence") == 1
        assert "https://github.com/org/repo/pull/42" in prompt
        assert turn.quality == "high"
        assert [link["url"] for link in turn.links] == [r.url for r in records]
        assert turn.search_metadata.keywords == ["github", "pull request"]
        assert turn.search_metadata.original_query == "find my github pull request"
        assert context.last_search_query == "github pull request"

    def test_search_failure_degrades(self):
        """A failing search becomes zero results and a normal reply."""
        orchestrator, history, llm, store = build_orchestrator(
            keywords=["github"], search_error=SearchError("History service unreachable")
        )
        context = ChatContext(thread_id="t1")

        turn = asyncio.run(orchestrator.handle_turn("find github", context))

        assert turn.is_error is False
        assert turn.quality == "none"
        assert NO_RESULTS_SENTINEL in llm.sessions[0].prompts[0]

    def test_turns_persisted_in_order(self):
        """User turn then assistant turn are stored and kept in memory."""
        orchestrator, history, llm, store = build_orchestrator(keywords=["github"], results=[make_record(0.5)])
        context = ChatContext(thread_id="t1")

        turn = asyncio.run(orchestrator.handle_turn("find github", context))

        stored = asyncio.run(store.get_turns("t1", 10))["messages"]
        assert [m["role"] for m in stored] == ["user", "assistant"]
        assert stored[1]["id"] == turn.id
        assert stored[1]["metadata"]["search_metadata"]["keywords"] == ["github"]
        assert "links" not in stored[1]
        assert [t.role for t in context.chat_history] == ["user", "assistant"]

    def test_generating_flag_cleared(self):
        """The in-flight flag is cleared after the turn."""
        orchestrator, *_ = build_orchestrator(keywords=[])
        context = ChatContext(thread_id="t1")
        asyncio.run(orchestrator.handle_turn("hello", context))
        assert context.is_generating is False


class TestDroppedSubmissions:
    """Test submissions that never start a turn."""

    def test_empty_message(self):
        """Blank messages are ignored."""
        orchestrator, history, llm, store = build_orchestrator(keywords=["x"])
        assert asyncio.run(orchestrator.handle_turn("   ", ChatContext(thread_id="t1"))) is None

    def test_single_flight(self):
        """A second submission while one is in flight is a no-op."""
        extractor = FakeExtractor(keywords=["x"])
        orchestrator, history, llm, store = build_orchestrator(extractor=extractor)
        context = ChatContext(thread_id="t1", is_generating=True)

        assert asyncio.run(orchestrator.handle_turn("find x", context)) is None
        assert extractor.queries == []
        assert context.is_generating is True

    def test_concurrent_submissions(self):
        """Two overlapping submissions produce exactly one reply."""
        orchestrator, history, llm, store = build_orchestrator(keywords=[])
        context = ChatContext(thread_id="t1")

        async def both():
            return await asyncio.gather(
                orchestrator.handle_turn("one", context),
                orchestrator.handle_turn("two", context),
            )

        results = asyncio.run(both())
        assert sum(r is not None for r in results) == 1

    def test_gate_blocks_input(self):
        """A blocking processing gate drops the submission."""
        gate = MagicMock(input_blocked=True)
        orchestrator, history, llm, store = build_orchestrator(keywords=["x"], gate=gate)
        assert asyncio.run(orchestrator.handle_turn("find x", ChatContext(thread_id="t1"))) is None

    def test_gate_open(self):
        """An idle gate lets the turn through."""
        gate = MagicMock(input_blocked=False)
        orchestrator, *_ = build_orchestrator(keywords=[], gate=gate)
        assert asyncio.run(orchestrator.handle_turn("hi", ChatContext(thread_id="t1"))) is not None


class TestErrorTurns:
    """Test failures that end the turn with an error reply."""

    def test_intent_failure(self):
        """Extraction failure yields an error reply; only the user turn is stored."""
        extractor = FakeExtractor(error=IntentExtractionError("Keyword extraction failed"))
        orchestrator, history, llm, store = build_orchestrator(extractor=extractor)
        context = ChatContext(thread_id="t1")

        turn = asyncio.run(orchestrator.handle_turn("find x", context))

        assert turn.is_error is True
        assert "rephras" in turn.content
        assert history.search_calls == []
        stored = asyncio.run(store.get_turns("t1"))["messages"]
        assert [(m["role"], m["content"]) for m in stored] == [("user", "find x")]
        assert [t.role for t in context.chat_history] == ["user"]
        assert context.is_generating is False

    def test_generation_failure(self):
        """Generation failure yields the classified message; the question survives a reload."""
        llm = FakeLLMClient(error=RuntimeError("quota exceeded"))
        orchestrator, history, _, store = build_orchestrator(keywords=[], llm_client=llm)
        context = ChatContext(thread_id="t1")

        turn = asyncio.run(orchestrator.handle_turn("hello", context))

        assert turn.is_error is True
        assert "quota" in turn.content
        stored = asyncio.run(store.get_turns("t1"))["messages"]
        assert [(m["role"], m["content"]) for m in stored] == [("user", "hello")]
        assert [t.content for t in context.chat_history] == ["hello"]

    def test_current_message_not_in_session_seed(self):
        """The stored question is prompted once, not repeated in the seeded history."""
        orchestrator, history, llm, store = build_orchestrator(keywords=[])
        context = ChatContext(thread_id="t1")

        asyncio.run(orchestrator.handle_turn("what did I read about tokio", context))

        assert "tokio" not in llm.sessions[0].system_prompt
        assert llm.sessions[0].prompts == ["what did I read about tokio"]

    def test_persistence_failure_still_replies(self):
        """Storage failures are logged; the reply is still returned."""
        session_store = MagicMock()
        session_store.append = AsyncMock(side_effect=PersistenceError("Failed to save chat turn"))
        orchestrator, *_ = build_orchestrator(keywords=[], session_store=session_store)

        turn = asyncio.run(orchestrator.handle_turn("hello", ChatContext(thread_id="t1")))

        assert turn is not None and turn.is_error is False
        assert session_store.append.await_count == 2


class TestRefreshLastSearch:
    """Test silent re-runs of the last query."""

    def test_refresh_updates_links(self):
        """The stored query is searched again and links replaced."""
        orchestrator, history, llm, store = build_orchestrator(results=[make_record(0.6, url="https://new.example/")])
        context = ChatContext(thread_id="t1", last_search_query="rust async")

        asyncio.run(orchestrator.refresh_last_search(context))

        assert history.search_calls[0]["query"] == "rust async"
        assert context.last_links[0]["url"] == "https://new.example/"

    def test_refresh_skipped(self):
        """Nothing runs without a query or while a turn is in flight."""
        orchestrator, history, *_ = build_orchestrator()
        asyncio.run(orchestrator.refresh_last_search(ChatContext(thread_id="t1")))
        busy = ChatContext(thread_id="t2", last_search_query="x", is_generating=True)
        asyncio.run(orchestrator.refresh_last_search(busy))
        assert history.search_calls == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
