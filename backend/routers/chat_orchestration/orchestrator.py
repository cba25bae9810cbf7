"""
History Chat Search Orchestrator - one chat turn, end to end

Pipeline per turn:
1. Classify intent (keyword extraction); failure ends the turn with an error reply
2. Search history with the joined keywords when it is a search; failure
   degrades to zero results
3. Assess result quality from the top record
4. Build bounded context text
5. Generate the reply; failure ends the turn with an error reply
6. Persist the user turn, then the assistant turn (with SearchMetadata when
   the reply used retrieved history)

One turn runs per ChatContext at a time. Submissions while a turn is in
flight, empty messages, and submissions while the processing gate blocks
input are dropped (handle_turn returns None).
"""

import logging
from typing import List, Optional

from errors import (
    GenerationError,
    IntentExtractionError,
    PersistenceError,
    describe_error_for_user,
    log_error,
)
from logging_config import log_message_in, log_message_out, log_search

from .links import build_link_list
from .quality import QUALITY_NONE
from .session import ChatContext, ChatTurn, SearchMetadata, USER, ASSISTANT

logger = logging.getLogger(__name__)


class SearchOrchestrator:
    """Runs the intent -> search -> context -> generate -> persist pipeline."""

    def __init__(
        self,
        intent_classifier,
        history_client,
        quality_analyzer,
        context_builder,
        generator,
        session_store,
        gate=None,
        search_mode: str = "hybrid-rerank",
        page_size: int = 25,
        link_limit: int = 5,
    ):
        """
        Args:
            intent_classifier: IntentClassifier
            history_client: HistoryServiceClient (search collaborator)
            quality_analyzer: QualityAnalyzer
            context_builder: ContextBuilder
            generator: ResponseGenerator
            session_store: SessionStore used to persist turns
            gate: Optional ProcessingGateMonitor consulted before each turn
        """
        self.intent_classifier = intent_classifier
        self.history_client = history_client
        self.quality_analyzer = quality_analyzer
        self.context_builder = context_builder
        self.generator = generator
        self.session_store = session_store
        self.gate = gate
        self.search_mode = search_mode
        self.page_size = page_size
        self.link_limit = link_limit

    async def handle_turn(self, user_message: str, context: ChatContext) -> Optional[ChatTurn]:
        """
        Process one user submission.

        Returns:
            The assistant turn (possibly an error reply), or None when the
            submission was dropped
        """
        message = (user_message or "").strip()
        if not message:
            return None
        if context.is_generating:
            logger.info(f"Turn already in flight for {context.thread_id}, dropping submission")
            return None
        if self.gate is not None and self.gate.input_blocked:
            logger.info(f"Input blocked while pages are processing ({context.thread_id})")
            return None

        context.is_generating = True
        try:
            log_message_in(logger, message, thread=context.thread_id)
            user_turn = ChatTurn(thread_id=context.thread_id, role=USER, content=message)
            # Kept even when the reply fails; only error replies are transient
            await self._persist(context, user_turn)

            try:
                intent = await self.intent_classifier.classify(message)
            except IntentExtractionError as e:
                log_error(logger, e, context="Intent")
                return self._error_turn(context, e)

            records = []
            if intent.is_search_query:
                records = await self.search(intent.search_query, context)

            assessment = self.quality_analyzer.assess(records)
            context_text = self.context_builder.build(records, assessment, intent.is_search_query)

            try:
                reply = await self.generator.generate(context, message, context_text)
            except GenerationError as e:
                log_error(logger, e, context="Generation")
                return self._error_turn(context, e)

            metadata = None
            if intent.is_search_query:
                metadata = SearchMetadata(keywords=list(intent.keywords), original_query=message)

            assistant_turn = ChatTurn(
                thread_id=context.thread_id,
                role=ASSISTANT,
                content=reply,
                search_metadata=metadata,
                links=build_link_list(records, self.link_limit),
                quality=assessment.quality,
            )

            await self._persist(context, assistant_turn)

            log_message_out(logger, quality=assessment.quality, links=len(assistant_turn.links))
            return assistant_turn
        finally:
            context.is_generating = False

    async def search(self, query: str, context: Optional[ChatContext] = None) -> List:
        """Search history; any failure is logged and yields no records."""
        log_search(logger, "start", query, mode=self.search_mode)
        try:
            records = await self.history_client.search(
                query, mode=self.search_mode, limit=self.page_size, offset=0
            )
        except Exception as e:
            log_error(logger, e, context="Search", include_traceback=False)
            records = []
        log_search(logger, "end", query, results=len(records))

        if context is not None:
            context.last_search_query = query
            context.last_links = build_link_list(records, self.link_limit)
        return records

    async def refresh_last_search(self, context: ChatContext) -> List:
        """Silently re-run the context's last search to refresh its links."""
        if not context.last_search_query or context.is_generating:
            return []
        return await self.search(context.last_search_query, context)

    async def _persist(self, context: ChatContext, turn: ChatTurn) -> None:
        try:
            await self.session_store.append(context, turn)
        except PersistenceError as e:
            log_error(logger, e, context="Persist", include_traceback=False)

    def _error_turn(self, context: ChatContext, error: Exception) -> ChatTurn:
        log_message_out(logger, quality=QUALITY_NONE, is_error=True)
        return ChatTurn(
            thread_id=context.thread_id,
            role=ASSISTANT,
            content=describe_error_for_user(error),
            is_error=True,
        )
