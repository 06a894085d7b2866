"""
document_chunks table CRUD (asyncpg)

Bulk insert, per-document replace, hydration of vector hits, recent chunks for keyword fallback.
"""
from __future__ import annotations

from typing import Any, Sequence

import asyncpg

from infra.postgres.service import get_conn
from rag.chunking import Chunk

_COLUMNS = """
    c.id, c.document_id, c.company_id, c.chunk_index,
    c.content, c.token_count, c.section, c.created_at,
    d.title AS document_title
"""

_FROM = "FROM document_chunks c JOIN documents d ON d.id = c.document_id"


def _row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
    return dict(row)


class ChunkRepository:

    async def bulk_create(self, chunks: list[Chunk]) -> int:
        if not chunks:
            return 0
        conn = await get_conn()
        try:
            stmt = await conn.prepare("""
                INSERT INTO document_chunks (
                    id, document_id, company_id, chunk_index, content, token_count, section
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            """)
            rows = [
                (c.id, c.document_id, c.company_id, c.chunk_index, c.content, c.token_count, c.section)
                for c in chunks
            ]
            await stmt.executemany(rows)
            return len(rows)
        finally:
            await conn.close()

    async def delete_by_document(self, document_id: str) -> int:
        conn = await get_conn()
        try:
            result = await conn.execute("DELETE FROM document_chunks WHERE document_id = $1", document_id)
            parts = result.split()
            return int(parts[-1]) if parts else 0
        finally:
            await conn.close()

    async def get_by_ids(self, ids: Sequence[str], company_id: str) -> list[dict[str, Any]]:
        """Chunks with document title, in the order of ids; other companies' chunks are skipped."""
        if not ids:
            return []
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} {_FROM} WHERE c.id = ANY($1::varchar[]) AND c.company_id = $2",
                list(ids), company_id,
            )
            by_id = {r["id"]: _row_to_dict(r) for r in rows}
            return [by_id[i] for i in ids if i in by_id]
        finally:
            await conn.close()

    async def recent_by_company(
        self,
        company_id: str,
        limit: int,
        document_ids: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} {_FROM}
                WHERE c.company_id = $1 AND ($2::varchar[] IS NULL OR c.document_id = ANY($2::varchar[]))
                ORDER BY c.created_at DESC
                LIMIT $3
                """,
                company_id, document_ids, limit,
            )
            return [_row_to_dict(r) for r in rows]
        finally:
            await conn.close()


chunk_repository = ChunkRepository()
