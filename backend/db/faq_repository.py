"""
faqs table CRUD (asyncpg). Keywords drive the static-answer shortcut of the chat pipeline.
"""
from typing import Any

import asyncpg

from infra.postgres.service import get_conn

_COLUMNS = "id, company_id, question, answer, keywords, category, is_active, created_at, updated_at"


def _row_to_faq(row: asyncpg.Record) -> dict[str, Any]:
    return {
        "id": row["id"],
        "company_id": row["company_id"],
        "question": row["question"],
        "answer": row["answer"],
        "keywords": list(row["keywords"] or []),
        "category": row["category"],
        "is_active": row["is_active"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def normalize_keywords(keywords: list[str] | None) -> list[str]:
    """Lowercase, strip and de-duplicate, keeping order."""
    out: list[str] = []
    for k in keywords or []:
        k = k.strip().lower()
        if k and k not in out:
            out.append(k)
    return out


class FAQRepository:

    async def create(
        self,
        company_id: str,
        question: str,
        answer: str,
        keywords: list[str] | None = None,
        category: str | None = None,
        is_active: bool = True,
    ) -> dict[str, Any]:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                INSERT INTO faqs (company_id, question, answer, keywords, category, is_active)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING {_COLUMNS}
                """,
                company_id,
                question,
                answer,
                normalize_keywords(keywords),
                category,
                is_active,
            )
            return _row_to_faq(row)
        finally:
            await conn.close()

    async def list_by_company(self, company_id: str, category: str | None = None) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM faqs
                WHERE company_id = $1 AND ($2::varchar IS NULL OR category = $2)
                ORDER BY created_at DESC
                """,
                company_id,
                category,
            )
            return [_row_to_faq(r) for r in rows]
        finally:
            await conn.close()

    async def find_by_keyword(self, company_id: str, keyword: str) -> dict[str, Any] | None:
        """First active FAQ of the company whose keywords contain keyword exactly."""
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                SELECT {_COLUMNS} FROM faqs
                WHERE company_id = $1 AND is_active AND $2 = ANY(keywords)
                ORDER BY id
                LIMIT 1
                """,
                company_id,
                keyword,
            )
            return _row_to_faq(row) if row else None
        finally:
            await conn.close()

    async def update(self, faq_id: int, company_id: str, **fields: Any) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            if fields.get("keywords") is not None:
                fields["keywords"] = normalize_keywords(fields["keywords"])
            updates = ["updated_at = CURRENT_TIMESTAMP"]
            args: list[Any] = []
            i = 1
            for column in ("question", "answer", "keywords", "category", "is_active"):
                if fields.get(column) is not None:
                    updates.append(f"{column} = ${i}")
                    args.append(fields[column])
                    i += 1
            args.extend([faq_id, company_id])
            row = await conn.fetchrow(
                f"""
                UPDATE faqs SET {", ".join(updates)}
                WHERE id = ${i} AND company_id = ${i + 1}
                RETURNING {_COLUMNS}
                """,
                *args,
            )
            return _row_to_faq(row) if row else None
        finally:
            await conn.close()

    async def delete(self, faq_id: int, company_id: str) -> bool:
        conn = await get_conn()
        try:
            result = await conn.execute(
                "DELETE FROM faqs WHERE id = $1 AND company_id = $2", faq_id, company_id,
            )
            return result.split()[-1] == "1"
        finally:
            await conn.close()


faq_repository = FAQRepository()
