import json
import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config import settings

# Logger setup
logger = logging.getLogger(__name__)

# TTLs in seconds
STATS_TTL = 60 * 5
ANALYSES_TTL = 60 * 2
HEALTH_SUMMARY_TTL = 60 * 15
SHORT_TTL = 60

_client: Optional[redis.Redis] = None


def _encode(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def stats_key(user_id: str) -> str:
    return f"stats:{user_id}"


def analyses_key(user_id: str) -> str:
    return f"analyses:{user_id}"


def analysis_key(analysis_id: str) -> str:
    return f"analysis:{analysis_id}"


def health_summary_key(user_id: str) -> str:
    return f"health_summary:{user_id}"


def get_client() -> Optional[redis.Redis]:
    """Shared Redis client, or None when REDIS_URL is not configured."""
    global _client

    if not settings.REDIS_URL:
        return None

    if _client is None:
        _client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=10
        )
    return _client


async def close_cache():
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None


async def ping() -> Optional[bool]:
    """True/False for a reachable/unreachable cache, None when caching is disabled."""
    client = get_client()
    if client is None:
        return None
    try:
        return bool(await client.ping())
    except RedisError as e:
        logger.warning(f"Redis ping failed: {str(e)}")
        return False


async def get_cache(key: str) -> Optional[Any]:
    client = get_client()
    if client is None:
        return None

    try:
        cached = await client.get(key)
        return json.loads(cached) if cached else None
    except (RedisError, ValueError) as e:
        logger.error(f"Redis get error for {key}: {str(e)}")
        return None


async def set_cache(key: str, value: Any, ttl: int = SHORT_TTL) -> None:
    client = get_client()
    if client is None:
        return

    try:
        await client.setex(key, ttl, json.dumps(value, default=_encode))
    except (RedisError, TypeError) as e:
        logger.error(f"Redis set error for {key}: {str(e)}")


async def delete_cache(*keys: str) -> None:
    client = get_client()
    if client is None or not keys:
        return

    try:
        await client.delete(*keys)
    except RedisError as e:
        logger.error(f"Redis delete error: {str(e)}")


async def with_cache(key: str, loader: Callable[[], Awaitable[Any]], ttl: int = SHORT_TTL) -> Any:
    """
    Return the cached value for a key, or load, cache and return it.
    """
    cached = await get_cache(key)
    if cached is not None:
        return cached

    value = await loader()
    await set_cache(key, value, ttl)
    return value


async def invalidate_user(user_id: str, analysis_id: Optional[str] = None) -> None:
    """Drop everything cached for a user after their history changed."""
    keys = [stats_key(user_id), analyses_key(user_id), health_summary_key(user_id)]
    if analysis_id:
        keys.append(analysis_key(analysis_id))
    await delete_cache(*keys)
