"""
History Chat Events Router
Processing push events, combined status, and user preferences.
"""

import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from config import runtime_config
from errors import StatusPollError, handle_async_errors, success_response

logger = logging.getLogger(__name__)

router = APIRouter()


class EventRequest(BaseModel):
    type: Literal["status_update", "content_indexed"]
    event: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class PrefsRequest(BaseModel):
    enable_remote_warm: Optional[bool] = None
    disable_input_during_processing: Optional[bool] = None


@router.post("/events")
async def post_event(body: EventRequest, request: Request):
    """Forward a processing push event to the gate monitor."""
    gate = request.app.state.components.gate
    if body.type == "status_update":
        if not body.event:
            raise HTTPException(status_code=400, detail="status_update requires an event name")
        gate.handle_status_update(body.event, body.data)
    else:
        gate.handle_content_indexed(body.data)

    return {"success": True, "gate": gate.to_dict()}


@router.get("/status")
@handle_async_errors("status")
async def get_status(request: Request):
    """Model readiness, model warm-up text, and processing gate state."""
    components = request.app.state.components
    watcher = components.warm_watcher
    if not watcher.watching:
        try:
            await watcher.refresh()
        except StatusPollError:
            pass  # status_text already reports the failure

    return success_response(
        readiness=components.readiness.to_dict(),
        model_status=watcher.status_text,
        gate=components.gate.to_dict(),
        prefs=runtime_config.get_prefs(),
    )


@router.post("/prefs")
async def update_prefs(body: PrefsRequest, request: Request):
    """Update user preferences; enabling remote warm-up starts watching it."""
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No preferences given")

    was_enabled = runtime_config.enable_remote_warm
    result = runtime_config.update(**changes)
    runtime_config.save_overrides()

    if runtime_config.enable_remote_warm and not was_enabled:
        try:
            await request.app.state.components.warm_watcher.enable(runtime_config.get_prefs())
        except StatusPollError as e:
            logger.warning(f"Remote warm-up request failed: {e}")

    return {"success": True, "updated": result["updated"], "prefs": runtime_config.get_prefs()}
