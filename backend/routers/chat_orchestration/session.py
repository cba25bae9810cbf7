"""
History Chat Session - per-thread conversation state

ChatTurn is the unit of chat history; ChatContext is the single state object
the orchestrator owns per thread and passes to every component.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

USER = "user"
ASSISTANT = "assistant"


@dataclass
class SearchMetadata:
    """Marks an assistant turn that was answered from retrieved history.

    Only the query is kept; on reload the search is run again to rebuild the
    link list, so stored turns never carry result records.
    """

    keywords: List[str] = field(default_factory=list)
    original_query: str = ""
    is_search_query: bool = True

    @property
    def search_query(self) -> str:
        return " ".join(self.keywords)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_search_query": self.is_search_query,
            "keywords": list(self.keywords),
            "original_query": self.original_query,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SearchMetadata"]:
        if not data or not data.get("is_search_query"):
            return None
        return cls(
            keywords=list(data.get("keywords") or []),
            original_query=data.get("original_query") or "",
        )


@dataclass
class ChatTurn:
    """One user or assistant message in a thread.

    Attributes:
        id: Message id (assigned on creation, kept by storage)
        thread_id: Owning thread
        role: "user" or "assistant"
        content: Message text
        search_metadata: Present when the reply used retrieved history
        timestamp: Creation time (epoch seconds)

        Not persisted:
        links: Link list shown with the reply
        quality: Retrieval quality tier for the turn
        is_error: Reply describes a failure rather than an answer
    """

    thread_id: str
    role: str
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    search_metadata: Optional[SearchMetadata] = None
    timestamp: float = field(default_factory=time.time)

    links: List[Dict[str, str]] = field(default_factory=list)
    quality: str = "none"
    is_error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the persisted fields."""
        data = {
            "id": self.id,
            "thread_id": self.thread_id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.search_metadata is not None:
            data["metadata"] = {"search_metadata": self.search_metadata.to_dict()}
        return data

    def to_response(self) -> Dict[str, Any]:
        """Serialize for API clients, including display-only fields."""
        data = self.to_dict()
        data["links"] = self.links
        data["quality"] = self.quality
        data["is_error"] = self.is_error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatTurn":
        metadata = data.get("metadata") or {}
        return cls(
            id=data.get("id") or uuid.uuid4().hex,
            thread_id=data.get("thread_id", ""),
            role=data.get("role", USER),
            content=data.get("content", ""),
            search_metadata=SearchMetadata.from_dict(metadata.get("search_metadata")),
            timestamp=float(data.get("timestamp") or time.time()),
        )


@dataclass
class ChatContext:
    """Holds conversation state for a single chat thread.

    Attributes:
        thread_id: Unique identifier for the thread
        chat_history: Turns currently loaded, oldest first
        ai_session: Generation session (created lazily, dropped on clear)
        is_generating: A turn is in flight
        last_search_query: Joined keywords of the most recent search
        last_links: Link list from the most recent search
    """

    thread_id: str
    chat_history: List[ChatTurn] = field(default_factory=list)
    ai_session: Any = None
    is_generating: bool = False
    last_search_query: str = ""
    last_links: List[Dict[str, str]] = field(default_factory=list)

    def recent_turns(self, limit: int) -> List[ChatTurn]:
        """Last ``limit`` turns that were real exchanges (error replies excluded)."""
        if limit <= 0:
            return []
        turns = [t for t in self.chat_history if not t.is_error]
        return turns[-limit:]


class ContextRegistry:
    """In-process ChatContexts keyed by thread id."""

    def __init__(self):
        self._contexts: Dict[str, ChatContext] = {}

    def get(self, thread_id: str) -> Optional[ChatContext]:
        return self._contexts.get(thread_id)

    def create(self, thread_id: str) -> ChatContext:
        context = ChatContext(thread_id=thread_id)
        self._contexts[thread_id] = context
        return context

    def with_active_query(self) -> List[ChatContext]:
        return [c for c in self._contexts.values() if c.last_search_query]

    def __contains__(self, thread_id: str) -> bool:
        return thread_id in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)
