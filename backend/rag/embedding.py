"""
Embedding client (OpenAI-compatible embeddings API).

- Model: RAG_EMBEDDING_MODEL, default text-embedding-3-small (1536 dims)
- Endpoint: RAG_EMBEDDING_BASE_URL / RAG_EMBEDDING_API_KEY, else OPENAI_API_*
- Batched requests, order restored by response index
"""
from __future__ import annotations

import logging
import os
from typing import Any

from openai import AsyncOpenAI

logger = logging.getLogger("rag.embedding")

MAX_INPUT_CHARS = 6000

_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is not None:
        return _client
    base_url = os.getenv("RAG_EMBEDDING_BASE_URL") or os.getenv("OPENAI_API_BASE") or None
    api_key = os.getenv("RAG_EMBEDDING_API_KEY") or os.getenv("OPENAI_API_KEY", "")
    _client = AsyncOpenAI(api_key=api_key, base_url=base_url)
    return _client


def get_model() -> str:
    return os.getenv("RAG_EMBEDDING_MODEL", "text-embedding-3-small")


def get_dim() -> int:
    """Vector dimension; must match the Milvus collection schema."""
    return int(os.getenv("RAG_EMBEDDING_DIM", "1536"))


def get_batch_size() -> int:
    raw = os.getenv("RAG_EMBEDDING_BATCH_SIZE", "16").strip()
    try:
        val = int(raw)
    except ValueError:
        val = 16
    return max(1, val)


async def embed_texts(texts: list[str]) -> list[list[float]]:
    """
    Embed texts in batches.

    Each input is truncated to MAX_INPUT_CHARS. Output order matches input order.
    """
    if not texts:
        return []

    client = _get_client()
    model = get_model()
    batch_size = get_batch_size()
    vectors: list[list[float]] = []

    for i in range(0, len(texts), batch_size):
        batch = [t[:MAX_INPUT_CHARS] for t in texts[i:i + batch_size]]
        kwargs: dict[str, Any] = {"model": model, "input": batch}
        if model.startswith("text-embedding-3"):
            kwargs["dimensions"] = get_dim()
        resp = await client.embeddings.create(**kwargs)
        ordered = sorted(resp.data, key=lambda d: d.index)
        vectors.extend(d.embedding for d in ordered)

    logger.info(f"[RAG] embedded {len(texts)} texts with {model}")
    return vectors


async def embed_query(text: str) -> list[float]:
    results = await embed_texts([text])
    return results[0]
