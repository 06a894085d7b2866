"""
Redis access for the response cache (string keys) and the chat context window (lists).
Each helper opens its own client; a failing Redis surfaces as RedisError/OSError to the caller.
"""
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis


def get_url() -> str:
    host = os.getenv("REDIS_HOST", "localhost")
    port = os.getenv("REDIS_PORT", "6379")
    db = os.getenv("REDIS_DB", "0")
    password = os.getenv("REDIS_PASSWORD") or None
    auth = f":{password}@" if password else ""
    return f"redis://{auth}{host}:{port}/{db}"


@asynccontextmanager
async def connection() -> AsyncIterator[aioredis.Redis]:
    client = aioredis.from_url(get_url(), encoding="utf-8", decode_responses=True)
    try:
        yield client
    finally:
        await client.aclose()


async def ping() -> bool:
    async with connection() as client:
        return await client.ping()


async def get_key(key: str) -> Optional[str]:
    async with connection() as client:
        return await client.get(key)


async def set_key(key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
    async with connection() as client:
        await client.set(key, value, ex=ttl_seconds)


async def delete_key(key: str) -> bool:
    async with connection() as client:
        return await client.delete(key) > 0


async def delete_pattern(pattern: str) -> int:
    """SCAN + DEL for every key matching pattern; returns how many were removed."""
    deleted = 0
    async with connection() as client:
        async for key in client.scan_iter(match=pattern, count=500):
            deleted += await client.delete(key)
    return deleted


async def read_window(key: str, limit: int) -> list[str]:
    """Last `limit` items of a list, oldest first."""
    async with connection() as client:
        return await client.lrange(key, -limit, -1)


async def push_window(key: str, values: list[str], max_len: int, ttl_seconds: int) -> None:
    """Append, keep only the last max_len items and refresh the TTL in one transaction."""
    if not values:
        return
    async with connection() as client:
        async with client.pipeline(transaction=True) as pipe:
            pipe.rpush(key, *values)
            pipe.ltrim(key, -max_len, -1)
            pipe.expire(key, ttl_seconds)
            await pipe.execute()
