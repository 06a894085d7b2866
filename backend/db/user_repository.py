"""
users table CRUD (asyncpg), company scoped.
Depends on db/schema_users.sql. Credentials live with the identity provider, not here.
"""
from typing import Any

import asyncpg

from infra.postgres.service import get_conn

_COLUMNS = "id, company_id, email, name, role, department, status, created_at, updated_at, last_active_at"


def _row_to_user(row: asyncpg.Record) -> dict[str, Any]:
    return {
        "id": row["id"],
        "company_id": row["company_id"],
        "email": row["email"],
        "name": row["name"],
        "role": row["role"],
        "department": row["department"],
        "status": row["status"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "last_active_at": row["last_active_at"],
    }


class UserRepository:

    async def create(
        self,
        email: str,
        company_id: str | None,
        name: str | None = None,
        role: str = "employee",
        department: str | None = None,
    ) -> dict[str, Any]:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                INSERT INTO users (email, company_id, name, role, department)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {_COLUMNS}
                """,
                email,
                company_id,
                name,
                role,
                department,
            )
            return _row_to_user(row)
        finally:
            await conn.close()

    async def get_by_id(self, user_id: int) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM users WHERE id = $1", user_id)
            return _row_to_user(row) if row else None
        finally:
            await conn.close()

    async def get_by_email(self, email: str) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM users WHERE lower(email) = lower($1)",
                email,
            )
            return _row_to_user(row) if row else None
        finally:
            await conn.close()

    async def list_by_company(
        self,
        company_id: str,
        limit: int = 50,
        offset: int = 0,
        role: str | None = None,
    ) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM users
                WHERE company_id = $1 AND ($2::varchar IS NULL OR role = $2)
                ORDER BY created_at DESC
                LIMIT $3 OFFSET $4
                """,
                company_id,
                role,
                limit,
                offset,
            )
            return [_row_to_user(r) for r in rows]
        finally:
            await conn.close()

    async def count_by_company(self, company_id: str) -> int:
        conn = await get_conn()
        try:
            return await conn.fetchval(
                "SELECT COUNT(*)::int FROM users WHERE company_id = $1", company_id,
            )
        finally:
            await conn.close()

    async def update(
        self,
        user_id: int,
        company_id: str,
        name: str | None = None,
        department: str | None = None,
        status: str | None = None,
    ) -> dict[str, Any] | None:
        """Update the non-None fields of a user inside company_id."""
        conn = await get_conn()
        try:
            updates = ["updated_at = CURRENT_TIMESTAMP"]
            args: list[Any] = []
            i = 1
            for column, value in (("name", name), ("department", department), ("status", status)):
                if value is not None:
                    updates.append(f"{column} = ${i}")
                    args.append(value)
                    i += 1
            args.extend([user_id, company_id])
            row = await conn.fetchrow(
                f"""
                UPDATE users SET {", ".join(updates)}
                WHERE id = ${i} AND company_id = ${i + 1}
                RETURNING {_COLUMNS}
                """,
                *args,
            )
            return _row_to_user(row) if row else None
        finally:
            await conn.close()

    async def update_role(self, user_id: int, company_id: str, role: str) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                UPDATE users SET role = $3, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND company_id = $2
                RETURNING {_COLUMNS}
                """,
                user_id,
                company_id,
                role,
            )
            return _row_to_user(row) if row else None
        finally:
            await conn.close()


user_repository = UserRepository()
