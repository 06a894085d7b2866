"""
conversations table CRUD (asyncpg).
Depends on db/schema_conversations.sql; users and companies must exist.
"""
from typing import Any

import asyncpg

from infra.postgres.service import get_conn

_COLUMNS = "id, user_id, company_id, title, system_prompt, last_model, created_at, updated_at, deleted_at"


def _row_to_conversation(row: asyncpg.Record) -> dict[str, Any]:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "company_id": row["company_id"],
        "title": row["title"],
        "system_prompt": row["system_prompt"],
        "last_model": row["last_model"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "deleted_at": row["deleted_at"],
    }


class ConversationRepository:
    """Chat sessions."""

    async def create(
        self,
        conversation_id: str,
        user_id: int,
        company_id: str | None,
        title: str = "New conversation",
        system_prompt: str | None = None,
    ) -> dict[str, Any]:
        """conversation_id should be a UUID."""
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                INSERT INTO conversations (id, user_id, company_id, title, system_prompt)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {_COLUMNS}
                """,
                conversation_id,
                user_id,
                company_id,
                title,
                system_prompt,
            )
            return _row_to_conversation(row)
        finally:
            await conn.close()

    async def get_by_id(self, conversation_id: str) -> dict[str, Any] | None:
        """Soft-deleted rows are not returned."""
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM conversations WHERE id = $1 AND deleted_at IS NULL",
                conversation_id,
            )
            return _row_to_conversation(row) if row else None
        finally:
            await conn.close()

    async def list_by_user(
        self,
        user_id: int,
        company_id: str | None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """The user's conversations inside one company, most recently active first, with a message_count per row."""
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS},
                       (SELECT COUNT(*) FROM messages m WHERE m.conversation_id = c.id)::int AS message_count
                FROM conversations c
                WHERE user_id = $1 AND company_id IS NOT DISTINCT FROM $2 AND deleted_at IS NULL
                ORDER BY updated_at DESC
                LIMIT $3 OFFSET $4
                """,
                user_id,
                company_id,
                limit,
                offset,
            )
            out = []
            for r in rows:
                item = _row_to_conversation(r)
                item["message_count"] = r["message_count"]
                out.append(item)
            return out
        finally:
            await conn.close()

    async def update(
        self,
        conversation_id: str,
        title: str | None = None,
        system_prompt: str | None = None,
        last_model: str | None = None,
    ) -> dict[str, Any] | None:
        """Update the non-None fields and refresh updated_at."""
        conn = await get_conn()
        try:
            updates = ["updated_at = CURRENT_TIMESTAMP"]
            args = []
            i = 1
            if title is not None:
                updates.append(f"title = ${i}")
                args.append(title)
                i += 1
            if system_prompt is not None:
                updates.append(f"system_prompt = ${i}")
                args.append(system_prompt)
                i += 1
            if last_model is not None:
                updates.append(f"last_model = ${i}")
                args.append(last_model)
                i += 1
            if not args:
                return await self.get_by_id(conversation_id)
            args.append(conversation_id)
            row = await conn.fetchrow(
                f"""
                UPDATE conversations SET {", ".join(updates)}
                WHERE id = ${i} AND deleted_at IS NULL
                RETURNING {_COLUMNS}
                """,
                *args,
            )
            return _row_to_conversation(row) if row else None
        finally:
            await conn.close()

    async def touch(self, conversation_id: str, last_model: str | None = None) -> bool:
        """Refresh updated_at (and last_model when given) after new messages."""
        conn = await get_conn()
        try:
            result = await conn.execute(
                """
                UPDATE conversations
                SET updated_at = CURRENT_TIMESTAMP, last_model = COALESCE($2, last_model)
                WHERE id = $1 AND deleted_at IS NULL
                """,
                conversation_id,
                last_model,
            )
            return result.split()[-1] == "1"
        finally:
            await conn.close()

    async def soft_delete(self, conversation_id: str) -> bool:
        conn = await get_conn()
        try:
            result = await conn.execute(
                """
                UPDATE conversations SET deleted_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND deleted_at IS NULL
                """,
                conversation_id,
            )
            return result.split()[-1] == "1"
        finally:
            await conn.close()

    async def count_by_company(
        self,
        company_id: str,
        start=None,
        end=None,
    ) -> int:
        """Conversations created in [start, end); open bounds when None."""
        conn = await get_conn()
        try:
            return await conn.fetchval(
                """
                SELECT COUNT(*)::int FROM conversations
                WHERE company_id = $1
                  AND ($2::timestamptz IS NULL OR created_at >= $2)
                  AND ($3::timestamptz IS NULL OR created_at < $3)
                """,
                company_id,
                start,
                end,
            )
        finally:
            await conn.close()


conversation_repository = ConversationRepository()
