"""
Ingestion task queue (Redis RQ)

Document processing can run in a worker instead of the request:
- jobs survive API restarts (persisted in Redis)
- Retry(max=3, interval=60)
- failed jobs land in the RQ failed registry
"""
from __future__ import annotations

import asyncio
import logging
import os

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry

from infra.redis.service import get_url

logger = logging.getLogger("rag.tasks")

QUEUE_NAME = "rag_tasks"
MAX_RETRIES = 3
RETRY_DELAY = 60  # seconds


def use_queue() -> bool:
    return os.getenv("RAG_USE_QUEUE", "false").lower() in ("true", "1", "yes")


def process_document_task(doc_id: str) -> dict | None:
    """Sync entry point for the RQ worker."""
    from . import service

    try:
        return asyncio.run(service.process_document(doc_id))
    except Exception as e:
        logger.error(f"[RAG] task process_document({doc_id}) failed: {e}")
        raise


def enqueue_process_document(doc_id: str) -> str | None:
    """Queue a processing job; job id, or None when Redis refused it."""
    try:
        with Redis.from_url(get_url()) as conn:
            queue = Queue(QUEUE_NAME, connection=conn, default_timeout=600)
            job = queue.enqueue(
                process_document_task,
                doc_id,
                job_timeout="30m",
                retry=Retry(max=MAX_RETRIES, interval=RETRY_DELAY),
                failure_ttl=86400,
            )
            return job.id if job else None
    except RedisError as e:
        logger.warning(f"[RAG] enqueue failed: {e}")
        return None


def is_queue_available() -> bool:
    try:
        with Redis.from_url(get_url()) as conn:
            return bool(conn.ping())
    except RedisError:
        return False
