"""
Per-company response cache in Redis.

Key: response_cache:{company_id}:{normalized query}, TTL one hour.
Cache failures are logged and treated as a miss.
"""
import logging
from typing import Optional

from redis.exceptions import RedisError

from infra.redis import service as redis_service

logger = logging.getLogger("services.response_cache")

CACHE_PREFIX = "response_cache"
CACHE_TTL_SECONDS = 3600


def normalize_query(query: str) -> str:
    return (query or "").strip().lower()


def cache_key(company_id: str, query: str) -> str:
    return f"{CACHE_PREFIX}:{company_id}:{normalize_query(query)}"


async def get_cached_response(company_id: str, query: str) -> Optional[str]:
    try:
        return await redis_service.get_key(cache_key(company_id, query))
    except (RedisError, OSError) as e:
        logger.warning(f"[Cache] read failed: {e}")
        return None


async def set_cached_response(company_id: str, query: str, response: str, ttl: int = CACHE_TTL_SECONDS) -> None:
    try:
        await redis_service.set_key(cache_key(company_id, query), response, ttl_seconds=ttl)
    except (RedisError, OSError) as e:
        logger.warning(f"[Cache] write failed: {e}")


async def invalidate_company(company_id: str) -> int:
    """Drop every cached response of the company; returns the number of keys removed."""
    try:
        n = await redis_service.delete_pattern(f"{CACHE_PREFIX}:{company_id}:*")
        if n:
            logger.info(f"[Cache] invalidated {n} responses for company {company_id}")
        return n
    except (RedisError, OSError) as e:
        logger.warning(f"[Cache] invalidate failed: {e}")
        return 0
