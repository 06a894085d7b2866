"""
Milvus vector store for document chunks.

- One collection shared by all tenants, company_id as partition key
- HNSW dense index, COSINE metric
- Every search is filtered by company_id
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any, Optional

from pymilvus import (
    Collection,
    CollectionSchema,
    DataType,
    FieldSchema,
    MilvusException,
    connections,
    utility,
)

from rag.embedding import get_dim

logger = logging.getLogger("rag.vector_store")

COLLECTION_NAME = "benefits_document_chunks"
UPSERT_BATCH_SIZE = 100
UPSERT_RETRIES = 2
RETRY_DELAY_MS = 800

_collection: Collection | None = None


def _get_params() -> dict:
    return {
        "host": os.getenv("MILVUS_HOST", "localhost"),
        "port": os.getenv("MILVUS_PORT", "19530"),
    }


def _connect(alias: str = "default") -> None:
    connections.connect(alias, **_get_params())


def _entity_field(entity: Any, key: str, default: Any = "") -> Any:
    """entity may be a dict or a Hit depending on the pymilvus version."""
    if entity is None:
        return default
    if isinstance(entity, dict):
        return entity.get(key, default)
    val = getattr(entity, key, None)
    return default if val is None else val


def _quote(value: str) -> str:
    return "'" + str(value).replace("\\", "\\\\").replace("'", "\\'") + "'"


def build_filter(company_id: str, document_ids: Optional[list[str]] = None) -> str:
    parts = [f"company_id == {_quote(company_id)}"]
    if document_ids:
        parts.append(f"document_id in [{', '.join(_quote(d) for d in document_ids)}]")
    return " and ".join(parts)


def _get_or_create_collection(dense_dim: int | None = None) -> Collection:
    global _collection
    if _collection is not None:
        return _collection

    _connect()
    if utility.has_collection(COLLECTION_NAME):
        _collection = Collection(COLLECTION_NAME)
        return _collection

    fields = [
        FieldSchema(name="chunk_id", dtype=DataType.VARCHAR, max_length=80, is_primary=True),
        FieldSchema(name="company_id", dtype=DataType.VARCHAR, max_length=36, is_partition_key=True),
        FieldSchema(name="document_id", dtype=DataType.VARCHAR, max_length=36),
        FieldSchema(name="metadata", dtype=DataType.JSON),
        FieldSchema(name="dense_vector", dtype=DataType.FLOAT_VECTOR, dim=dense_dim or get_dim()),
    ]
    schema = CollectionSchema(
        fields=fields,
        description="Benefits documents, partitioned by company",
        enable_dynamic_field=False,
    )
    coll = Collection(name=COLLECTION_NAME, schema=schema)
    coll.create_index(
        field_name="dense_vector",
        index_params={
            "metric_type": "COSINE",
            "index_type": "HNSW",
            "params": {"M": 16, "efConstruction": 256},
        },
    )
    logger.info(f"[RAG] Milvus collection '{COLLECTION_NAME}' created")
    _collection = coll
    return _collection


async def upsert_chunks(
    *,
    chunk_ids: list[str],
    company_ids: list[str],
    document_ids: list[str],
    metadatas: list[dict[str, Any]],
    dense_vectors: list[list[float]],
) -> int:
    """Batch upsert; reconnects and retries a failed batch on MilvusException."""
    if not chunk_ids:
        return 0

    total = len(chunk_ids)
    if not all(len(col) == total for col in (company_ids, document_ids, metadatas, dense_vectors)):
        raise ValueError("Milvus upsert columns differ in length")

    dense_dim = len(dense_vectors[0])

    def _upsert() -> int:
        global _collection
        coll = _get_or_create_collection(dense_dim=dense_dim)
        written = 0
        for start in range(0, total, UPSERT_BATCH_SIZE):
            end = min(start + UPSERT_BATCH_SIZE, total)
            entities = [
                chunk_ids[start:end],
                company_ids[start:end],
                document_ids[start:end],
                metadatas[start:end],
                dense_vectors[start:end],
            ]
            attempt = 0
            while True:
                try:
                    coll.upsert(entities)
                    written += end - start
                    break
                except MilvusException as e:
                    if attempt >= UPSERT_RETRIES:
                        raise
                    logger.warning(
                        f"[RAG] Milvus upsert failed, retrying: batch={start}:{end}, "
                        f"attempt={attempt + 1}/{UPSERT_RETRIES + 1}, err={e}"
                    )
                    connections.disconnect("default")
                    _collection = None
                    time.sleep(RETRY_DELAY_MS * (2 ** attempt) / 1000.0)
                    coll = _get_or_create_collection(dense_dim=dense_dim)
                    attempt += 1
        coll.flush()
        return written

    return await asyncio.to_thread(_upsert)


async def search(
    *,
    vector: list[float],
    company_id: str,
    limit: int = 5,
    document_ids: Optional[list[str]] = None,
) -> list[dict[str, Any]]:
    """
    Company-scoped dense search.

    Returns [{chunk_id, document_id, metadata, score}, ...] best first.
    """
    coll = _get_or_create_collection()
    expr = build_filter(company_id, document_ids)

    def _search():
        coll.load()
        results = coll.search(
            data=[vector],
            anns_field="dense_vector",
            param={"metric_type": "COSINE", "params": {"ef": 128}},
            limit=limit,
            expr=expr,
            output_fields=["chunk_id", "document_id", "metadata"],
        )
        hits = []
        for hit in results[0]:
            entity = getattr(hit, "entity", None)
            hits.append({
                "chunk_id": hit.id,
                "document_id": _entity_field(entity, "document_id", ""),
                "metadata": _entity_field(entity, "metadata", {}),
                "score": float(hit.distance),
            })
        return hits

    return await asyncio.to_thread(_search)


async def delete_by_document(document_id: str) -> int:
    _connect()
    if not utility.has_collection(COLLECTION_NAME):
        return 0

    coll = Collection(COLLECTION_NAME)
    expr = f"document_id == {_quote(document_id)}"

    def _delete():
        coll.load()
        res = coll.delete(expr)
        return getattr(res, "delete_count", 0)

    return await asyncio.to_thread(_delete)
