"""
companies table CRUD (asyncpg).
Depends on db/schema_companies.sql.
"""
import json
from typing import Any

import asyncpg

from infra.postgres.service import get_conn

_COLUMNS = "id, name, domain, status, settings, created_at, updated_at"


def _row_to_company(row: asyncpg.Record) -> dict[str, Any]:
    settings = row["settings"]
    if isinstance(settings, str):
        settings = json.loads(settings)
    return {
        "id": row["id"],
        "name": row["name"],
        "domain": row["domain"],
        "status": row["status"],
        "settings": dict(settings or {}),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


class CompanyRepository:

    async def create(
        self,
        company_id: str,
        name: str,
        domain: str | None = None,
        settings: dict | None = None,
    ) -> dict[str, Any]:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                INSERT INTO companies (id, name, domain, settings)
                VALUES ($1, $2, $3, $4::jsonb)
                RETURNING {_COLUMNS}
                """,
                company_id,
                name,
                domain,
                json.dumps(settings or {}, ensure_ascii=False),
            )
            return _row_to_company(row)
        finally:
            await conn.close()

    async def get_by_id(self, company_id: str) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM companies WHERE id = $1", company_id)
            return _row_to_company(row) if row else None
        finally:
            await conn.close()

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM companies ORDER BY created_at DESC LIMIT $1 OFFSET $2",
                limit,
                offset,
            )
            return [_row_to_company(r) for r in rows]
        finally:
            await conn.close()

    async def update(
        self,
        company_id: str,
        name: str | None = None,
        domain: str | None = None,
        status: str | None = None,
    ) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            updates = ["updated_at = CURRENT_TIMESTAMP"]
            args: list[Any] = []
            i = 1
            for column, value in (("name", name), ("domain", domain), ("status", status)):
                if value is not None:
                    updates.append(f"{column} = ${i}")
                    args.append(value)
                    i += 1
            args.append(company_id)
            row = await conn.fetchrow(
                f"UPDATE companies SET {', '.join(updates)} WHERE id = ${i} RETURNING {_COLUMNS}",
                *args,
            )
            return _row_to_company(row) if row else None
        finally:
            await conn.close()

    async def update_settings(self, company_id: str, settings: dict[str, Any]) -> dict[str, Any] | None:
        """Shallow-merge settings into the stored JSON."""
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                UPDATE companies
                SET settings = settings || $2::jsonb, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1
                RETURNING {_COLUMNS}
                """,
                company_id,
                json.dumps(settings, ensure_ascii=False),
            )
            return _row_to_company(row) if row else None
        finally:
            await conn.close()


company_repository = CompanyRepository()
