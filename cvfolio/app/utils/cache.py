"""
Optional Redis cache. Only the admin CV overview is cached; every helper is a
no-op when REDIS_URL is unset or Redis cannot be reached, so callers never
branch on cache availability.
"""
import json
import logging
from typing import Any

from cvfolio.app.core.config import OVERVIEW_CACHE_KEY, settings

logger = logging.getLogger(__name__)
_client = None


async def connect() -> None:
    global _client
    if not settings.redis_url:
        logger.warning("redis_url not set, CV overview cache disabled")
        return
    try:
        from redis import asyncio as aioredis
        _client = aioredis.Redis.from_url(
            settings.redis_url, encoding="utf-8", decode_responses=True
        )
        await _client.ping()
        logger.info("Redis connected, CV overview cache enabled")
    except Exception as e:
        _client = None
        logger.warning("Redis connect failed: %s, CV overview cache disabled", e)


async def close() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


async def get(key: str) -> Any:
    if not _client:
        return None
    try:
        raw = await _client.get(key)
    except Exception as e:
        logger.debug("Cache get failed key=%s error=%s", key, e)
        return None
    return json.loads(raw) if raw else None


async def set(key: str, value: Any, ttl: int) -> None:
    if not _client:
        return
    try:
        # default=str covers datetimes in serialized pydantic dumps
        await _client.set(key, json.dumps(value, default=str), ex=ttl)
    except Exception as e:
        logger.debug("Cache set failed key=%s error=%s", key, e)


async def delete(key: str) -> None:
    if not _client:
        return
    try:
        await _client.delete(key)
    except Exception as e:
        logger.debug("Cache delete failed key=%s error=%s", key, e)


# --- Admin CV overview ---

async def get_overview() -> list[dict] | None:
    return await get(OVERVIEW_CACHE_KEY)


async def set_overview(overview: list[dict]) -> None:
    await set(OVERVIEW_CACHE_KEY, overview, ttl=settings.cv_overview_cache_ttl)


async def invalidate_overview() -> None:
    """Called after every version mutation. Download counts may lag up to the TTL."""
    await delete(OVERVIEW_CACHE_KEY)
