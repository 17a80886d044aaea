# happypulse/utils/redis_client.py
"""
Read-through cache for leaderboard pages.

Redis is optional. When REDIS_URL is empty or the server cannot be reached,
every call here becomes a no-op and pages are computed from the event store.
Nothing authoritative is ever written to Redis.
"""

import json
import logging
from typing import Optional, Any

import redis.asyncio as aioredis

from happypulse.core.config import settings

logger = logging.getLogger("redis_client")

LEADERBOARD_PREFIX = "hp:leaderboard:"

_client: Optional[aioredis.Redis] = None
_disabled: bool = False   # set once a connection attempt fails


async def get_redis() -> Optional[aioredis.Redis]:
    """Shared client, or None when caching is off for this process."""
    global _client, _disabled

    if _disabled or not settings.REDIS_URL:
        return None
    if _client is not None:
        return _client

    client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
    )
    try:
        await client.ping()
    except (aioredis.RedisError, OSError) as e:
        _disabled = True
        logger.warning(f"[Redis] unreachable ({e}); leaderboard pages will not be cached")
        return None
    _client = client
    return _client


def leaderboard_key(department: Optional[str], page: int, limit: int) -> str:
    return f"{LEADERBOARD_PREFIX}{department or 'all'}:{page}:{limit}"


async def get_page(key: str) -> Optional[Any]:
    r = await get_redis()
    if r is None:
        return None
    try:
        raw = await r.get(key)
    except aioredis.RedisError as e:
        logger.warning(f"[Redis] read {key} failed: {e}")
        return None
    return json.loads(raw) if raw else None


async def put_page(key: str, page: Any) -> None:
    r = await get_redis()
    if r is None:
        return
    try:
        await r.setex(key, settings.LEADERBOARD_CACHE_TTL, json.dumps(page, default=str))
    except aioredis.RedisError as e:
        logger.warning(f"[Redis] write {key} failed: {e}")


async def invalidate_leaderboard() -> None:
    """Drop every cached page. Called whenever a balance or badge changes."""
    r = await get_redis()
    if r is None:
        return
    try:
        keys = [key async for key in r.scan_iter(match=f"{LEADERBOARD_PREFIX}*")]
        if keys:
            await r.delete(*keys)
    except aioredis.RedisError as e:
        logger.warning(f"[Redis] leaderboard invalidation failed: {e}")
