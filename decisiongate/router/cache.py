"""
AI response cache.

Read-through cache keyed by a hash of (system prompt, prompt, model).
- RedisResponseCache: production; graceful degradation if Redis is unavailable
- InMemoryResponseCache: single-process use and tests

A cache outage is a miss, never an error. Concurrent misses on one key may
each call a provider; last writer wins.
"""

import hashlib
import time
from typing import Optional, Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)

CACHE_KEY_PREFIX = "ai:cache:"
AI_CACHE_TTL = 24 * 60 * 60  # 24 hours


def prompt_cache_key(system_prompt: Optional[str], prompt: str, model: str) -> str:
    """Deterministic cache key: sha256 of ``system|prompt|model``, 16 hex chars."""
    raw = f"{system_prompt or ''}|{prompt}|{model}"
    return CACHE_KEY_PREFIX + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


@runtime_checkable
class ResponseCache(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool: ...


class RedisResponseCache:
    """Redis-backed cache. Connects lazily; any Redis failure behaves as a miss."""

    def __init__(self, redis_url: Optional[str] = None, client=None):
        self._redis_url = redis_url
        self._redis = client
        self._connect_failed = False

    async def _get_redis(self):
        if self._redis is None and self._redis_url and not self._connect_failed:
            try:
                import redis.asyncio as aioredis

                self._redis = aioredis.from_url(
                    self._redis_url,
                    decode_responses=True,
                    socket_connect_timeout=3,
                )
                await self._redis.ping()
                logger.info("redis_connected")
            except Exception as e:
                logger.warning("redis_unavailable", error=str(e))
                self._redis = None
                self._connect_failed = True
        return self._redis

    async def get(self, key: str) -> Optional[str]:
        """Get from cache. Returns None if miss or Redis unavailable."""
        try:
            r = await self._get_redis()
            if r is None:
                return None
            value = await r.get(key)
            return value or None
        except Exception as e:
            logger.warning("ai_cache_get_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str, ttl_seconds: int = AI_CACHE_TTL) -> bool:
        """Set cache with TTL. Returns False if failed."""
        try:
            r = await self._get_redis()
            if r is None:
                return False
            await r.set(key, value, ex=ttl_seconds)
            return True
        except Exception as e:
            logger.warning("ai_cache_set_failed", key=key, error=str(e))
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class InMemoryResponseCache:
    """Process-local TTL cache."""

    def __init__(self):
        self._entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int = AI_CACHE_TTL) -> bool:
        now = time.monotonic()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]
        self._entries[key] = (value, now + ttl_seconds)
        return True

    def __len__(self) -> int:
        return len(self._entries)
