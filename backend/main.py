"""
History Chat - conversational search over browsing history
FastAPI Backend with LLM + History Service
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routers import chat, events
from components import build_components
from logging_config import setup_logging
from services.chat_store import get_chat_store
from services.history_service import get_history_client
from utils.llm import get_llm_client
from config import runtime_config

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("History Chat starting...")

    # Tests install their own components before startup
    if getattr(app.state, "components", None) is None:
        app.state.components = build_components(
            history_client=get_history_client(),
            llm_client=get_llm_client(),
            chat_store=await get_chat_store(),
        )
        app.state.components.start_monitors()
        logger.info(
            f"Monitors started (remote warm: {runtime_config.enable_remote_warm}, "
            f"input gate: {runtime_config.disable_input_during_processing})"
        )

    yield

    logger.info("History Chat shutting down...")
    app.state.components.stop_monitors()

    try:
        from services.redis_client import close_redis
        await close_redis()
    except Exception as e:
        logger.debug(f"Redis close during shutdown: {e}")


app = FastAPI(
    title="History Chat API",
    description="Chat over your browsing history",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS - restrict to localhost and private network IPs on port 3000
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|192\.168\.\d+\.\d+|[a-zA-Z][a-zA-Z0-9\-]*):3000$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router, prefix="/api", tags=["chat"])
app.include_router(events.router, prefix="/api", tags=["events"])


@app.get("/health")
async def health():
    """Health check - pings critical dependencies."""
    checks = {}

    # Check LLM server
    try:
        availability = await get_llm_client().availability()
        checks["llm"] = "ok" if availability == "available" else availability
    except Exception:
        checks["llm"] = "down"

    # Check Redis
    try:
        from services.redis_client import get_redis
        redis = await get_redis()
        redis_health = await redis.health_check()
        checks["redis"] = "ok" if redis_health.get("status") in ("connected", "fallback") else "down"
    except Exception:
        checks["redis"] = "down"

    all_ok = all(v == "ok" for v in checks.values())
    return {
        "status": "healthy" if all_ok else "degraded",
        "service": "history-chat",
        "checks": checks,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
