"""
PostgreSQL access (asyncpg). Repositories open one connection per call via get_conn().
"""
import os

import asyncpg


def get_dsn() -> str:
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    user = os.getenv("POSTGRES_USER", "benefits")
    password = os.getenv("POSTGRES_PASSWORD", "benefits")
    database = os.getenv("POSTGRES_DB", "benefits_ai")
    return f"postgresql://{user}:{password}@{host}:{port}/{database}"


async def get_conn() -> asyncpg.Connection:
    """New connection; the caller closes it in finally."""
    return await asyncpg.connect(get_dsn())


async def ping() -> bool:
    """Check that the database answers."""
    conn = await get_conn()
    try:
        return await conn.fetchval("SELECT 1") == 1
    finally:
        await conn.close()
