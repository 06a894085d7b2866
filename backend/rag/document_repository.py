"""
documents table CRUD (asyncpg)

Document metadata lifecycle: create, duplicate check, status transitions, listing.
"""
from __future__ import annotations

from typing import Any

import asyncpg

from infra.postgres.service import get_conn

_COLUMNS = """
    id, company_id, uploaded_by, title,
    filename, file_hash, byte_size, storage_path,
    content_type, document_type,
    status, error_message, chunk_count, rag_processed, processed_at,
    created_at, updated_at
"""

# statuses picked up by a company-wide processing run
PENDING_STATUSES = ("uploaded", "pending", "failed")


def _row_to_dict(row: asyncpg.Record | None) -> dict[str, Any] | None:
    if row is None:
        return None
    return dict(row)


class DocumentRepository:

    async def create(
        self,
        *,
        id: str,
        company_id: str,
        uploaded_by: int | None,
        title: str,
        filename: str,
        file_hash: str,
        byte_size: int,
        storage_path: str,
        content_type: str | None = None,
        document_type: str = "general",
    ) -> dict[str, Any]:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                INSERT INTO documents (
                    id, company_id, uploaded_by, title,
                    filename, file_hash, byte_size, storage_path,
                    content_type, document_type
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING {_COLUMNS}
                """,
                id, company_id, uploaded_by, title,
                filename, file_hash, byte_size, storage_path,
                content_type, document_type,
            )
            return _row_to_dict(row)
        finally:
            await conn.close()

    async def find_by_company_and_hash(self, company_id: str, file_hash: str) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM documents WHERE company_id = $1 AND file_hash = $2",
                company_id, file_hash,
            )
            return _row_to_dict(row)
        finally:
            await conn.close()

    async def get_by_id(self, doc_id: str) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM documents WHERE id = $1", doc_id)
            return _row_to_dict(row)
        finally:
            await conn.close()

    async def update_status(
        self,
        doc_id: str,
        status: str,
        error_message: str | None = None,
    ) -> dict[str, Any] | None:
        """Set status; leaving processed clears rag_processed."""
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                UPDATE documents
                SET status = $2, error_message = $3,
                    rag_processed = CASE WHEN $2 = 'processed' THEN rag_processed ELSE FALSE END,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1
                RETURNING {_COLUMNS}
                """,
                doc_id, status, error_message,
            )
            return _row_to_dict(row)
        finally:
            await conn.close()

    async def mark_processed(self, doc_id: str, chunk_count: int) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                UPDATE documents
                SET status = 'processed', error_message = NULL, chunk_count = $2,
                    rag_processed = TRUE, processed_at = CURRENT_TIMESTAMP,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1
                RETURNING {_COLUMNS}
                """,
                doc_id, chunk_count,
            )
            return _row_to_dict(row)
        finally:
            await conn.close()

    async def list_by_company(
        self,
        company_id: str,
        limit: int = 50,
        offset: int = 0,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS}
                FROM documents
                WHERE company_id = $1 AND ($2::varchar IS NULL OR status = $2)
                ORDER BY created_at DESC
                LIMIT $3 OFFSET $4
                """,
                company_id, status, limit, offset,
            )
            return [_row_to_dict(r) for r in rows]
        finally:
            await conn.close()

    async def list_pending(self, company_id: str) -> list[dict[str, Any]]:
        """Documents still to be processed, oldest first."""
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS}
                FROM documents
                WHERE company_id = $1 AND status = ANY($2::varchar[])
                ORDER BY created_at
                """,
                company_id, list(PENDING_STATUSES),
            )
            return [_row_to_dict(r) for r in rows]
        finally:
            await conn.close()

    async def delete(self, doc_id: str) -> bool:
        """Delete the row; chunks go by cascade."""
        conn = await get_conn()
        try:
            result = await conn.execute("DELETE FROM documents WHERE id = $1", doc_id)
            return result.split()[-1] == "1"
        finally:
            await conn.close()


document_repository = DocumentRepository()
