"""
History Chat Orchestration - intent-aware retrieval-augmented reply pipeline

Components:
- ChatContext / ChatTurn: Per-thread state and chat history entries
- IntentClassifier: Search-or-chat decision via keyword extraction
- QualityAnalyzer: none / low / high tier from the top search result
- ContextBuilder: Bounded context text from ranked records
- ResponseGenerator: Per-context generation session with retry and circuit breaker
- SearchOrchestrator: One chat turn, end to end
- SessionStore: History load/append/clear with link regeneration on reload
"""

from .session import ChatContext, ChatTurn, ContextRegistry, SearchMetadata
from .intent import IntentClassifier, IntentResult
from .quality import QualityAnalyzer, QualityAssessment
from .context_builder import ContextBuilder, build_turns_context, format_relative_time
from .links import build_link_list, favicon_url
from .generator import ResponseGenerator
from .orchestrator import SearchOrchestrator
from .session_store import SessionStore

__all__ = [
    "ChatContext",
    "ChatTurn",
    "ContextRegistry",
    "SearchMetadata",
    "IntentClassifier",
    "IntentResult",
    "QualityAnalyzer",
    "QualityAssessment",
    "ContextBuilder",
    "build_turns_context",
    "format_relative_time",
    "build_link_list",
    "favicon_url",
    "ResponseGenerator",
    "SearchOrchestrator",
    "SessionStore",
]
