"""
History Chat component wiring.

Builds every collaborator once from runtime config and keeps them together
on ``app.state.components`` so routers never reach for module singletons.
Tests pass fakes for the three external collaborators (history service,
LLM backend, chat store).
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from config import runtime_config
from routers.chat_orchestration import (
    ContextBuilder,
    ContextRegistry,
    IntentClassifier,
    QualityAnalyzer,
    ResponseGenerator,
    SearchOrchestrator,
    SessionStore,
)
from services.keyword_extractor import KeywordExtractor
from services.model_readiness import ModelReadinessMonitor, RemoteWarmWatcher
from services.processing_gate import ProcessingGateMonitor

logger = logging.getLogger(__name__)


@dataclass
class HistoryChatComponents:
    history_client: Any
    llm_client: Any
    chat_store: Any
    registry: ContextRegistry
    generator: ResponseGenerator
    session_store: SessionStore
    orchestrator: SearchOrchestrator
    readiness: ModelReadinessMonitor
    warm_watcher: RemoteWarmWatcher
    gate: ProcessingGateMonitor

    def start_monitors(self) -> None:
        self.readiness.start()
        self.gate.start()
        if runtime_config.enable_remote_warm:
            self.warm_watcher.start()

    def stop_monitors(self) -> None:
        self.readiness.stop()
        self.warm_watcher.stop()
        self.gate.stop()


def build_components(
    history_client,
    llm_client,
    chat_store,
    extractor: Optional[Any] = None,
    sleep=None,
) -> HistoryChatComponents:
    """
    Wire the chat pipeline around the given external collaborators.

    Args:
        history_client: HistoryServiceClient (search, model status, queues)
        llm_client: LLMClient (availability and generation sessions)
        chat_store: ChatStore (turn persistence)
        extractor: Keyword extractor; defaults to one over ``llm_client``
        sleep: Optional sleep coroutine shared by the monitors
    """
    cfg = runtime_config
    registry = ContextRegistry()
    monitor_kwargs = {"sleep": sleep} if sleep is not None else {}

    generator = ResponseGenerator(
        llm_client,
        timeout=cfg.llm_timeout,
        turns_max=cfg.chat_turns_max,
        turns_max_chars=cfg.chat_turns_max_chars,
        **cfg.get_session_params(),
    )
    session_store = SessionStore(
        chat_store,
        history_client=history_client,
        generator=generator,
        search_mode=cfg.search_mode,
        page_size=cfg.search_page_size,
        link_limit=cfg.link_list_size,
    )
    classifier = IntentClassifier(
        extractor or KeywordExtractor(llm_client, temperature=cfg.keyword_temperature),
        search_enabled=cfg.search_enabled,
    )

    orchestrator_ref = {}

    async def rerun_active_queries():
        orchestrator = orchestrator_ref["orchestrator"]
        for context in registry.with_active_query():
            await orchestrator.refresh_last_search(context)

    gate = ProcessingGateMonitor(
        history_client,
        interval=cfg.gate_poll_interval_s,
        settle_delay=cfg.gate_settle_delay_s,
        recheck_delay=cfg.gate_event_recheck_delay_s,
        input_policy=lambda: cfg.disable_input_during_processing,
        has_active_query=lambda: bool(registry.with_active_query()),
        on_idle=rerun_active_queries,
        **monitor_kwargs,
    )

    orchestrator = SearchOrchestrator(
        classifier,
        history_client,
        QualityAnalyzer(cfg.quality_high_threshold),
        ContextBuilder(cfg.context_max_records, cfg.context_excerpt_chars),
        generator,
        session_store,
        gate=gate,
        search_mode=cfg.search_mode,
        page_size=cfg.search_page_size,
        link_limit=cfg.link_list_size,
    )
    orchestrator_ref["orchestrator"] = orchestrator

    readiness = ModelReadinessMonitor(
        llm_client,
        initial_delay=cfg.readiness_initial_delay_s,
        interval=cfg.readiness_poll_interval_s,
        max_attempts=cfg.readiness_max_attempts,
        optimistic_ready_after_s=cfg.optimistic_ready_after_s,
        **monitor_kwargs,
    )
    warm_watcher = RemoteWarmWatcher(
        history_client,
        interval=cfg.remote_warm_poll_interval_s,
        timeout=cfg.remote_warm_timeout_s,
        **monitor_kwargs,
    )

    logger.info("History chat components ready")
    return HistoryChatComponents(
        history_client=history_client,
        llm_client=llm_client,
        chat_store=chat_store,
        registry=registry,
        generator=generator,
        session_store=session_store,
        orchestrator=orchestrator,
        readiness=readiness,
        warm_watcher=warm_watcher,
        gate=gate,
    )
