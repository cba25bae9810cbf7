"""
Shared pytest fixtures and fakes for History Chat tests.

The fakes stand in for the three external collaborators (history service,
LLM backend, keyword extraction) and record how they were called.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from services.chat_store import ChatStore
from services.history_service import QueueStats, SearchRecord
from services.redis_client import RedisManager
from services.keyword_extractor import ExtractedKeywords

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_record(score=0.5, title="Example page", url="https://example.com/page", **kwargs):
    """Build a SearchRecord with sensible defaults."""
    kwargs.setdefault("domain", url.split("/")[2])
    kwargs.setdefault("summary", f"Summary of {title}")
    kwargs.setdefault("visit_count", 3)
    kwargs.setdefault("last_visit_at", NOW - timedelta(days=2))
    return SearchRecord(url=url, title=title, score=score, **kwargs)


def memory_store(max_stored=50, dedupe_window_s=5.0):
    """ChatStore over an in-memory (fallback) RedisManager."""
    redis = RedisManager(enabled=False)
    asyncio.run(redis.connect())
    return ChatStore(max_stored=max_stored, dedupe_window_s=dedupe_window_s, redis=redis)


class FakeSession:
    """Records prompts; replies from a list or raises a configured error."""

    def __init__(self, system_prompt, replies=None, error=None, **params):
        self.system_prompt = system_prompt
        self.params = params
        self.replies = list(replies or [])
        self.error = error
        self.prompts = []
        self.reset_count = 0

    def prompt(self, text, format=None):
        self.prompts.append(text)
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else "Here is what I found."

    def reset(self):
        self.reset_count += 1


class FakeLLMClient:
    """LLM client whose availability answers come from a script."""

    model = "fake-model"

    def __init__(self, answers=("available",), replies=None, error=None):
        self.answers = list(answers)
        self.replies = replies
        self.error = error
        self.availability_calls = 0
        self.sessions = []

    async def availability(self):
        self.availability_calls += 1
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def initialize(self):
        return {"available": await self.availability(), "model": self.model, "base_url": "http://fake"}

    def create_session(self, system_prompt, **params):
        session = FakeSession(system_prompt, replies=self.replies, error=self.error, **params)
        self.sessions.append(session)
        return session


class FakeHistoryClient:
    """History service with canned search results and status payloads."""

    def __init__(self, results=None, search_error=None):
        self.results = list(results or [])
        self.search_error = search_error
        self.search_calls = []
        self.model_statuses = []
        self.summary_stats = QueueStats()
        self.ingestion_stats = QueueStats()
        self.queue_error = None
        self.prefs_calls = []
        self.warm_calls = 0

    async def search(self, query, mode="hybrid-rerank", limit=25, offset=0):
        self.search_calls.append({"query": query, "mode": mode, "limit": limit, "offset": offset})
        if self.search_error is not None:
            raise self.search_error
        return list(self.results)

    async def get_model_status(self):
        status = self.model_statuses.pop(0) if len(self.model_statuses) > 1 else (
            self.model_statuses[0] if self.model_statuses else None
        )
        if isinstance(status, Exception):
            raise status
        return status

    async def start_remote_warm(self):
        self.warm_calls += 1
        return {"started": True}

    async def refresh_prefs(self, prefs=None):
        self.prefs_calls.append(prefs)
        return {}

    async def get_summary_queue_stats(self):
        if self.queue_error is not None:
            raise self.queue_error
        return self.summary_stats

    async def get_ingestion_stats(self):
        if self.queue_error is not None:
            raise self.queue_error
        return self.ingestion_stats


class FakeExtractor:
    """Keyword extractor returning fixed terms, or raising."""

    def __init__(self, keywords=None, error=None):
        self.keywords = list(keywords or [])
        self.error = error
        self.queries = []

    async def extract(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return ExtractedKeywords(keywords=self.keywords)


@pytest.fixture
def history_client():
    return FakeHistoryClient()


@pytest.fixture
def llm_client():
    return FakeLLMClient()


@pytest.fixture
def now():
    return NOW
