"""
Redis Connection Manager - chat thread storage infrastructure.

Provides:
- Async connection with health checks and reconnection
- List operations used for per-thread chat turns
- Graceful fallback to in-memory lists when Redis is unavailable

Usage:
    from services.redis_client import get_redis

    redis = await get_redis()
    await redis.rpush("histchat:thread:abc", payload)
"""

import asyncio
import logging
from typing import Optional, Any, Dict, List
from dataclasses import dataclass, field

import redis.asyncio as redis_async

logger = logging.getLogger(__name__)


def _redis_slice(items: List[str], start: int, end: int) -> List[str]:
    """Apply Redis LRANGE index semantics (inclusive end, negatives from tail)."""
    stop = end + 1 if end >= 0 else len(items) + end + 1
    return items[start:stop] if stop > 0 else []


@dataclass
class RedisManager:
    """
    Redis connection manager with fallback support.

    Maintains connection state and degrades to process-local lists
    when Redis is unreachable.
    """

    url: str = "redis://localhost:6379/0"
    enabled: bool = True

    # Connection state
    _client: Any = field(default=None, repr=False)
    _available: bool = field(default=False, repr=False)
    _fallback_mode: bool = field(default=False, repr=False)
    _local_lists: Dict[str, List[str]] = field(default_factory=dict, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    _initialized: bool = field(default=False, repr=False)

    @property
    def available(self) -> bool:
        """Check if Redis is available."""
        return self._available and not self._fallback_mode

    @property
    def fallback_mode(self) -> bool:
        return self._fallback_mode

    async def connect(self) -> bool:
        """
        Establish Redis connection.

        Returns:
            True if connected, False if fallback mode activated
        """
        if not self.enabled:
            logger.info("Redis disabled by config, using fallback mode")
            self._fallback_mode = True
            self._initialized = True
            return False

        async with self._lock:
            if self._initialized and self._available:
                return True

            try:
                self._client = redis_async.from_url(
                    self.url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5.0,
                    socket_timeout=5.0,
                )
                await self._client.ping()
                self._available = True
                self._fallback_mode = False
                self._initialized = True
                logger.info(f"Redis connected: {self.url}")
                return True
            except Exception as e:
                logger.warning(f"Redis connection failed: {e}, using fallback mode")
                self._fallback_mode = True
                self._available = False
                self._initialized = True
                return False

    async def disconnect(self) -> None:
        """Close Redis connection."""
        async with self._lock:
            if self._client:
                try:
                    await self._client.aclose()
                except Exception as e:
                    logger.warning(f"Error closing Redis: {e}")
                finally:
                    self._client = None
                    self._available = False

    async def health_check(self) -> Dict[str, Any]:
        """
        Check Redis health status.

        Returns:
            Dict with status, mode, and latency info
        """
        if self._fallback_mode:
            return {
                "status": "fallback",
                "mode": "in-memory",
                "threads": len(self._local_lists),
            }

        if not self._client:
            return {"status": "disconnected", "mode": "none"}

        try:
            loop = asyncio.get_running_loop()
            start = loop.time()
            await self._client.ping()
            latency_ms = (loop.time() - start) * 1000
            return {
                "status": "connected",
                "mode": "redis",
                "latency_ms": round(latency_ms, 2),
            }
        except Exception as e:
            self._enter_fallback()
            logger.warning(f"Redis health check failed: {e}, switching to fallback")
            return {"status": "error", "mode": "fallback", "error": str(e)}

    # === List Operations ===

    async def rpush(self, key: str, *values: str) -> int:
        """Append values to a list, returning the new length."""
        if self._fallback_mode:
            return self._fallback_rpush(key, values)

        try:
            return await self._client.rpush(key, *values)
        except Exception as e:
            logger.warning(f"Redis RPUSH failed for {key}: {e}")
            self._enter_fallback()
            return self._fallback_rpush(key, values)

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        """Read a list slice (inclusive end, Redis index rules)."""
        if self._fallback_mode:
            return _redis_slice(self._local_lists.get(key, []), start, end)

        try:
            return await self._client.lrange(key, start, end)
        except Exception as e:
            logger.warning(f"Redis LRANGE failed for {key}: {e}")
            self._enter_fallback()
            return _redis_slice(self._local_lists.get(key, []), start, end)

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        """Keep only the given slice of a list."""
        if self._fallback_mode:
            self._fallback_ltrim(key, start, end)
            return True

        try:
            await self._client.ltrim(key, start, end)
            return True
        except Exception as e:
            logger.warning(f"Redis LTRIM failed for {key}: {e}")
            self._enter_fallback()
            self._fallback_ltrim(key, start, end)
            return True

    async def replace_list(self, key: str, values: List[str]) -> bool:
        """Atomically replace a list's contents."""
        if self._fallback_mode:
            self._local_lists[key] = list(values)
            return True

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if values:
                    pipe.rpush(key, *values)
                await pipe.execute()
            return True
        except Exception as e:
            logger.warning(f"Redis list replace failed for {key}: {e}")
            self._enter_fallback()
            self._local_lists[key] = list(values)
            return True

    async def delete(self, key: str) -> bool:
        """Delete a key."""
        if self._fallback_mode:
            self._local_lists.pop(key, None)
            return True

        try:
            await self._client.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Redis DELETE failed for {key}: {e}")
            self._enter_fallback()
            self._local_lists.pop(key, None)
            return True

    # === Internal ===

    def _fallback_rpush(self, key: str, values) -> int:
        items = self._local_lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    def _fallback_ltrim(self, key: str, start: int, end: int) -> None:
        if key in self._local_lists:
            self._local_lists[key] = _redis_slice(self._local_lists[key], start, end)

    def _enter_fallback(self) -> None:
        """Switch to fallback mode."""
        if not self._fallback_mode:
            logger.warning("Redis unavailable, switching to fallback mode")
            self._fallback_mode = True
            self._available = False

    async def try_reconnect(self) -> bool:
        """Attempt to reconnect to Redis."""
        if not self._fallback_mode:
            return True

        logger.info("Attempting Redis reconnection...")
        self._fallback_mode = False
        self._initialized = False
        return await self.connect()


# Singleton instance
_redis_manager: Optional[RedisManager] = None
_init_lock = asyncio.Lock()


async def get_redis() -> RedisManager:
    """
    Get the Redis manager singleton.

    Lazily initializes connection on first call.
    """
    global _redis_manager

    if _redis_manager is None:
        async with _init_lock:
            if _redis_manager is None:
                from config import runtime_config

                _redis_manager = RedisManager(
                    url=runtime_config.redis_url,
                    enabled=runtime_config.redis_enabled,
                )
                await _redis_manager.connect()

    return _redis_manager


async def close_redis() -> None:
    """Close the Redis connection (call on shutdown)."""
    global _redis_manager
    if _redis_manager:
        await _redis_manager.disconnect()
        _redis_manager = None
