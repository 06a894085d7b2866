"""
messages table CRUD (asyncpg).
Depends on db/schema_messages.sql; conversations must exist.
"""
import json
from typing import Any

import asyncpg

from infra.postgres.service import get_conn

_COLUMNS = "id, conversation_id, role, content, token_count, metadata, created_at"


def _row_to_message(row: asyncpg.Record) -> dict[str, Any]:
    metadata = row["metadata"]
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return {
        "id": row["id"],
        "conversation_id": row["conversation_id"],
        "role": row["role"],
        "content": row["content"],
        "token_count": row["token_count"],
        "metadata": dict(metadata) if metadata else None,
        "created_at": row["created_at"],
    }


class MessageRepository:

    async def create(
        self,
        conversation_id: str,
        role: str,
        content: str,
        token_count: int = 0,
        metadata: dict | None = None,
    ) -> dict[str, Any]:
        """role is system / user / assistant / tool."""
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                INSERT INTO messages (conversation_id, role, content, token_count, metadata)
                VALUES ($1, $2, $3, $4, $5::jsonb)
                RETURNING {_COLUMNS}
                """,
                conversation_id,
                role,
                content,
                token_count,
                json.dumps(metadata, ensure_ascii=False) if metadata is not None else None,
            )
            return _row_to_message(row)
        finally:
            await conn.close()

    async def list_by_conversation(
        self,
        conversation_id: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Chronological order."""
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS}
                FROM messages
                WHERE conversation_id = $1
                ORDER BY created_at ASC, id ASC
                LIMIT $2 OFFSET $3
                """,
                conversation_id,
                limit,
                offset,
            )
            return [_row_to_message(r) for r in rows]
        finally:
            await conn.close()

    async def get_latest_n(self, conversation_id: str, n: int) -> list[dict[str, Any]]:
        """Last n messages, returned oldest first for prompt assembly."""
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS}
                FROM (
                    SELECT * FROM messages
                    WHERE conversation_id = $1
                    ORDER BY created_at DESC, id DESC
                    LIMIT $2
                ) sub
                ORDER BY created_at ASC, id ASC
                """,
                conversation_id,
                n,
            )
            return [_row_to_message(r) for r in rows]
        finally:
            await conn.close()

    async def count_by_conversation(self, conversation_id: str) -> int:
        conn = await get_conn()
        try:
            return await conn.fetchval(
                "SELECT COUNT(*)::int FROM messages WHERE conversation_id = $1",
                conversation_id,
            )
        finally:
            await conn.close()


message_repository = MessageRepository()
