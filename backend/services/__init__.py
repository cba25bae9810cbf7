"""
History Chat Services - Shared infrastructure services.

- redis_client: Redis connection manager with health checks and fallback
- chat_store: Thread persistence to Redis
- history_service: HTTP client for search, model status and queue stats
- llm_client: OpenAI-compatible generation backend
- keyword_extractor: Search intent keyword extraction
- polling / model_readiness / processing_gate: Background monitors
"""

from .redis_client import RedisManager, get_redis

__all__ = ["RedisManager", "get_redis"]
