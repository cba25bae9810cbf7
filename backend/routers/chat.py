"""
History Chat Router
Chat turns, thread history, and thread clearing over HTTP.

Each thread has one in-process ChatContext; the first request for a thread
loads its recent history from the chat store.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from config import runtime_config
from errors import PersistenceError
from routers.chat_orchestration import ChatContext

# Thread ID validation pattern: alphanumeric, hyphens, underscores, max 64 chars
_THREAD_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")

logger = logging.getLogger(__name__)

router = APIRouter()


class ChatRequest(BaseModel):
    thread_id: str
    message: str


def _validate_thread_id(thread_id: str) -> None:
    """Validate thread ID format to prevent key injection."""
    if not _THREAD_ID_PATTERN.match(thread_id):
        raise HTTPException(status_code=400, detail="Invalid thread ID format")


async def _get_context(request: Request, thread_id: str) -> ChatContext:
    """Return the thread's context, loading its history on first use."""
    components = request.app.state.components
    context = components.registry.get(thread_id)
    if context is not None:
        return context

    context = components.registry.create(thread_id)
    try:
        await components.session_store.load_recent(context, runtime_config.history_load_limit)
    except PersistenceError as e:
        logger.warning(f"History load failed for {thread_id}: {e}")
    return context


@router.post("/chat")
async def post_chat(body: ChatRequest, request: Request):
    """Run one chat turn and return the assistant reply."""
    _validate_thread_id(body.thread_id)
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Message is empty")

    context = await _get_context(request, body.thread_id)
    turn = await request.app.state.components.orchestrator.handle_turn(body.message, context)
    if turn is None:
        raise HTTPException(status_code=409, detail="A reply is already in progress or input is blocked")

    return {"success": True, "turn": turn.to_response()}


@router.get("/chat/{thread_id}/history")
async def get_history(thread_id: str, request: Request, limit: Optional[int] = None):
    """Reload recent history (links are rebuilt by re-running searches)."""
    _validate_thread_id(thread_id)
    limit = limit or runtime_config.history_load_limit
    if limit < 1:
        raise HTTPException(status_code=400, detail="limit must be positive")

    components = request.app.state.components
    context = components.registry.get(thread_id) or components.registry.create(thread_id)
    try:
        turns = await components.session_store.load_recent(context, limit)
    except PersistenceError as e:
        logger.error(f"History load failed for {thread_id}: {e}")
        raise HTTPException(status_code=503, detail="Chat history is unavailable")

    return {
        "thread_id": thread_id,
        "messages": [t.to_response() for t in turns],
        "last_search_query": context.last_search_query,
    }


@router.delete("/chat/{thread_id}")
async def clear_chat(thread_id: str, request: Request):
    """Clear a thread's stored history and generation session."""
    _validate_thread_id(thread_id)
    components = request.app.state.components
    context = components.registry.get(thread_id) or components.registry.create(thread_id)
    try:
        await components.session_store.clear(context)
    except PersistenceError as e:
        logger.error(f"Clear failed for {thread_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to clear chat history")

    return {"success": True, "thread_id": thread_id}
