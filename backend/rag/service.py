"""
Document ingestion and retrieval

Ingestion:
  upload → SHA-256 dedup per company → MinIO → text extraction (PDF/DOCX/TXT)
  → fixed-size chunking → embedding → Milvus upsert → status flag

Retrieval:
  query → embedding → company-scoped Milvus search → PostgreSQL hydration
  (keyword scoring over recent chunks when embedding or Milvus is down)
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import uuid
from typing import Any, Optional

from minio.error import S3Error

from infra.minio import service as minio_service
from services import response_cache
from services.audit import log_event

from . import chunking, embedding, parsers, vector_store
from .chunk_repository import chunk_repository
from .document_repository import document_repository
from .models import ChunkOut, DocumentStatus, SearchHit

logger = logging.getLogger("rag.service")

NO_CONTEXT = "No relevant documents found."
PREVIEW_CHARS = 200


# ---------------------------------------------------------------------------
# 1. Upload
# ---------------------------------------------------------------------------

async def upload_document(
    *,
    company_id: str,
    user_id: Optional[int],
    filename: str,
    file_data: bytes,
    content_type: Optional[str] = None,
    title: Optional[str] = None,
    document_type: str = "general",
) -> dict[str, Any]:
    """
    Store an uploaded file and create its documents row (status uploaded).

    The same bytes uploaded twice to one company return the existing row.
    Raises ValueError for unsupported file types.
    """
    if not parsers.is_supported(filename):
        raise ValueError(f"Unsupported file type: {filename}")

    file_hash = hashlib.sha256(file_data).hexdigest()
    existing = await document_repository.find_by_company_and_hash(company_id, file_hash)
    if existing:
        logger.info(f"[RAG] duplicate upload, returning {existing['id']}")
        return existing

    doc_id = str(uuid.uuid4())
    storage_path = minio_service.document_key(company_id, doc_id, filename)
    content_type = content_type or parsers.guess_content_type(filename)
    await asyncio.to_thread(minio_service.put_bytes, storage_path, file_data, content_type)

    doc = await document_repository.create(
        id=doc_id,
        company_id=company_id,
        uploaded_by=user_id,
        title=title or filename,
        filename=filename,
        file_hash=file_hash,
        byte_size=len(file_data),
        storage_path=storage_path,
        content_type=content_type,
        document_type=document_type,
    )
    logger.info(f"[RAG] uploaded {filename} as {doc_id} ({len(file_data)} bytes)")

    await log_event(
        action="document_uploaded",
        resource_type="document",
        resource_id=doc_id,
        user_id=user_id,
        company_id=company_id,
        details={"filename": filename, "byte_size": len(file_data), "document_type": document_type},
    )
    return doc


async def get_document(doc_id: str, company_id: str) -> Optional[dict[str, Any]]:
    """The document, or None when missing or owned by another company."""
    doc = await document_repository.get_by_id(doc_id)
    if not doc or doc["company_id"] != company_id:
        return None
    return doc


async def list_documents(company_id: str, limit: int = 50, offset: int = 0, status: Optional[str] = None):
    return await document_repository.list_by_company(company_id, limit=limit, offset=offset, status=status)


# ---------------------------------------------------------------------------
# 2. Processing pipeline
# ---------------------------------------------------------------------------

async def _embed_and_upsert(doc: dict[str, Any], chunks: list[chunking.Chunk]) -> None:
    vectors = await embedding.embed_texts([c.content for c in chunks])
    metadatas = [
        {
            "title": doc["title"],
            "section": c.section,
            "chunk_index": c.chunk_index,
            "preview": c.content[:PREVIEW_CHARS],
        }
        for c in chunks
    ]
    await vector_store.upsert_chunks(
        chunk_ids=[c.id for c in chunks],
        company_ids=[c.company_id for c in chunks],
        document_ids=[c.document_id for c in chunks],
        metadatas=metadatas,
        dense_vectors=vectors,
    )


async def process_document(doc_id: str) -> dict[str, Any]:
    """
    Run the pipeline for one document:
      uploaded/pending/failed → processing → processed | failed

    A processed document is returned unchanged. Failures are recorded on the row
    (status failed, error_message) and the updated row is returned.
    """
    doc = await document_repository.get_by_id(doc_id)
    if not doc:
        raise ValueError(f"Document not found: {doc_id}")

    if doc["status"] == DocumentStatus.PROCESSED.value:
        return doc

    try:
        logger.info(f"[RAG] processing {doc_id} ({doc['filename']})")
        await document_repository.update_status(doc_id, DocumentStatus.PROCESSING.value)

        data = await asyncio.to_thread(minio_service.read_bytes, doc["storage_path"])
        text = await asyncio.to_thread(parsers.extract_text, data, doc["filename"])
        if not text or not text.strip():
            raise ValueError("No text content extracted")

        chunks = chunking.build_chunks(text, document_id=doc_id, company_id=doc["company_id"])
        if not chunks:
            raise ValueError("No text content extracted")
        logger.info(f"[RAG] {len(chunks)} chunks for {doc_id}")

        await vector_store.delete_by_document(doc_id)
        await chunk_repository.delete_by_document(doc_id)
        await chunk_repository.bulk_create(chunks)

        await _embed_and_upsert(doc, chunks)

        updated = await document_repository.mark_processed(doc_id, len(chunks))
        await response_cache.invalidate_company(doc["company_id"])
        logger.info(f"[RAG] processed {doc_id}: {len(chunks)} chunks")
        return updated

    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}" if not isinstance(e, ValueError) else str(e)
        logger.error(f"[RAG] processing failed for {doc_id}: {error_msg}")
        failed = await document_repository.update_status(
            doc_id, DocumentStatus.FAILED.value, error_message=error_msg[:4000],
        )
        return failed


async def process_company_documents(company_id: str) -> dict[str, Any]:
    """Process every uploaded, pending or failed document of the company, one after another."""
    docs = await document_repository.list_pending(company_id)
    results = []
    processed = 0
    failed = 0
    for doc in docs:
        out = await process_document(doc["id"])
        status = out["status"] if out else DocumentStatus.FAILED.value
        if status == DocumentStatus.PROCESSED.value:
            processed += 1
        else:
            failed += 1
        results.append({
            "document_id": doc["id"],
            "status": status,
            "error": out.get("error_message") if out else "Document disappeared during processing",
        })
    logger.info(f"[RAG] company {company_id}: {processed} processed, {failed} failed of {len(docs)}")
    return {"total": len(docs), "processed": processed, "failed": failed, "results": results}


async def reprocess_document(doc_id: str) -> dict[str, Any]:
    """Drop vectors and chunks, reset to pending and run the pipeline again."""
    doc = await document_repository.get_by_id(doc_id)
    if not doc:
        raise ValueError(f"Document not found: {doc_id}")

    await vector_store.delete_by_document(doc_id)
    await chunk_repository.delete_by_document(doc_id)
    await document_repository.update_status(doc_id, DocumentStatus.PENDING.value)
    return await process_document(doc_id)


async def delete_document(doc_id: str) -> bool:
    """Delete vectors, the row (chunks cascade) and the stored file."""
    doc = await document_repository.get_by_id(doc_id)
    if not doc:
        return False

    await vector_store.delete_by_document(doc_id)
    deleted = await document_repository.delete(doc_id)
    try:
        await asyncio.to_thread(minio_service.remove, doc["storage_path"])
    except S3Error as e:
        logger.warning(f"[RAG] could not remove stored file {doc['storage_path']}: {e}")
    await response_cache.invalidate_company(doc["company_id"])
    return deleted


# ---------------------------------------------------------------------------
# 3. Retrieval
# ---------------------------------------------------------------------------

def _to_hit(row: dict[str, Any], score: float) -> SearchHit:
    return SearchHit(
        chunk=ChunkOut(
            id=row["id"],
            document_id=row["document_id"],
            document_title=row.get("document_title"),
            chunk_index=row["chunk_index"],
            content=row["content"],
            token_count=row.get("token_count") or 0,
            section=row.get("section"),
        ),
        score=score,
    )


def extract_keywords(query: str) -> list[str]:
    return [w for w in (query or "").lower().split() if len(w) > 2]


def keyword_score(content: str, keywords: list[str]) -> int:
    """Total number of keyword occurrences in content (case-insensitive)."""
    text = (content or "").lower()
    return sum(text.count(k) for k in keywords)


async def _vector_search(
    query: str, company_id: str, limit: int, document_ids: Optional[list[str]],
) -> list[SearchHit]:
    vector = await embedding.embed_query(query)
    raw = await vector_store.search(
        vector=vector, company_id=company_id, limit=limit, document_ids=document_ids,
    )
    scores = {h["chunk_id"]: h["score"] for h in raw}
    rows = await chunk_repository.get_by_ids([h["chunk_id"] for h in raw], company_id)
    return [_to_hit(r, scores[r["id"]]) for r in rows]


async def keyword_search(
    query: str, company_id: str, limit: int = 5, document_ids: Optional[list[str]] = None,
) -> list[SearchHit]:
    keywords = extract_keywords(query)
    if not keywords:
        return []
    candidates = await chunk_repository.recent_by_company(company_id, limit * 3, document_ids)
    scored = []
    for row in candidates:
        score = keyword_score(row["content"], keywords)
        if score > 0:
            scored.append((score, row))
    scored.sort(key=lambda x: x[0], reverse=True)
    return [_to_hit(row, float(score)) for score, row in scored[:limit]]


async def search(
    query: str,
    company_id: str,
    limit: int = 5,
    document_ids: Optional[list[str]] = None,
) -> list[SearchHit]:
    """
    Company-scoped similarity search, best first.

    Falls back to keyword scoring when embedding or Milvus fails; returns []
    when the fallback fails too.
    """
    try:
        return await _vector_search(query, company_id, limit, document_ids)
    except Exception as e:
        logger.warning(f"[RAG] vector search failed, using keyword fallback: {e}")

    try:
        return await keyword_search(query, company_id, limit, document_ids)
    except Exception as e:
        logger.error(f"[RAG] keyword fallback failed: {e}")
        return []


def generate_context(results: list[SearchHit]) -> str:
    """Prompt block listing the retrieved chunks."""
    if not results:
        return NO_CONTEXT
    blocks = [
        f"\n[Document {i}]\n"
        f"Title: {r.chunk.document_title}\n"
        f"Section: {r.chunk.section or 'General'}\n"
        f"Content: {r.chunk.content}\n"
        f"---"
        for i, r in enumerate(results, start=1)
    ]
    return "Based on the following relevant documents:\n\n" + "\n".join(blocks)
