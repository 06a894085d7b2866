"""
Dependency health: PostgreSQL, Redis and MinIO
"""
import asyncio

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from infra.minio import service as minio_service
from infra.postgres import service as postgres_service
from infra.redis import service as redis_service

router = APIRouter(prefix="/health", tags=["health"])


async def _check(name: str, probe) -> dict:
    try:
        ok = bool(await probe())
        return {"service": name, "status": "ok" if ok else "error"}
    except Exception as e:
        return {"service": name, "status": "error", "detail": str(e)}


@router.get("/services", summary="Ping backing services")
async def services():
    """200 when every service answers, 503 otherwise."""
    results = await asyncio.gather(
        _check("postgres", postgres_service.ping),
        _check("redis", redis_service.ping),
        _check("minio", lambda: asyncio.to_thread(minio_service.ping)),
    )
    healthy = all(r["status"] == "ok" for r in results)
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "healthy" if healthy else "degraded", "services": list(results)},
    )
