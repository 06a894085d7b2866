"""
benefit_plans and benefit_enrollments CRUD (asyncpg), always filtered by company_id.
Depends on db/schema_benefits.sql.
"""
import json
from typing import Any

import asyncpg

from infra.postgres.service import get_conn

_PLAN_COLUMNS = """
    id, company_id, name, plan_type, provider,
    monthly_premium, deductible_individual, out_of_pocket_max_individual,
    coverage_details, is_active, created_at, updated_at
"""

_PLAN_UPDATABLE = (
    "name",
    "plan_type",
    "provider",
    "monthly_premium",
    "deductible_individual",
    "out_of_pocket_max_individual",
)


def _row_to_plan(row: asyncpg.Record) -> dict[str, Any]:
    details = row["coverage_details"]
    if isinstance(details, str):
        details = json.loads(details)
    return {
        "id": row["id"],
        "company_id": row["company_id"],
        "name": row["name"],
        "plan_type": row["plan_type"],
        "provider": row["provider"],
        "monthly_premium": float(row["monthly_premium"]),
        "deductible_individual": float(row["deductible_individual"]),
        "out_of_pocket_max_individual": float(row["out_of_pocket_max_individual"]),
        "coverage_details": dict(details or {}),
        "is_active": row["is_active"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _row_to_enrollment(row: asyncpg.Record) -> dict[str, Any]:
    return {
        "id": row["id"],
        "company_id": row["company_id"],
        "user_id": row["user_id"],
        "plan_id": row["plan_id"],
        "plan_name": row["plan_name"],
        "coverage_level": row["coverage_level"],
        "status": row["status"],
        "effective_date": row["effective_date"],
        "created_at": row["created_at"],
    }


class BenefitPlanRepository:

    async def create(self, company_id: str, **fields: Any) -> dict[str, Any]:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                INSERT INTO benefit_plans (
                    company_id, name, plan_type, provider,
                    monthly_premium, deductible_individual, out_of_pocket_max_individual,
                    coverage_details, is_active
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9)
                RETURNING {_PLAN_COLUMNS}
                """,
                company_id,
                fields["name"],
                fields.get("plan_type", "medical"),
                fields.get("provider"),
                fields.get("monthly_premium", 0),
                fields.get("deductible_individual", 0),
                fields.get("out_of_pocket_max_individual", 0),
                json.dumps(fields.get("coverage_details") or {}, ensure_ascii=False),
                fields.get("is_active", True),
            )
            return _row_to_plan(row)
        finally:
            await conn.close()

    async def get(self, plan_id: int, company_id: str) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"SELECT {_PLAN_COLUMNS} FROM benefit_plans WHERE id = $1 AND company_id = $2",
                plan_id,
                company_id,
            )
            return _row_to_plan(row) if row else None
        finally:
            await conn.close()

    async def get_many(self, plan_ids: list[int], company_id: str) -> list[dict[str, Any]]:
        """Plans in the order of plan_ids; ids outside the company are dropped."""
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"SELECT {_PLAN_COLUMNS} FROM benefit_plans WHERE id = ANY($1::int[]) AND company_id = $2",
                plan_ids,
                company_id,
            )
            by_id = {r["id"]: _row_to_plan(r) for r in rows}
            return [by_id[pid] for pid in plan_ids if pid in by_id]
        finally:
            await conn.close()

    async def list_by_company(self, company_id: str, active_only: bool = False) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_PLAN_COLUMNS} FROM benefit_plans
                WHERE company_id = $1 AND (NOT $2 OR is_active)
                ORDER BY plan_type, name
                """,
                company_id,
                active_only,
            )
            return [_row_to_plan(r) for r in rows]
        finally:
            await conn.close()

    async def update(self, plan_id: int, company_id: str, **fields: Any) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            updates = ["updated_at = CURRENT_TIMESTAMP"]
            args: list[Any] = []
            i = 1
            for column in _PLAN_UPDATABLE:
                if fields.get(column) is not None:
                    updates.append(f"{column} = ${i}")
                    args.append(fields[column])
                    i += 1
            if fields.get("coverage_details") is not None:
                updates.append(f"coverage_details = ${i}::jsonb")
                args.append(json.dumps(fields["coverage_details"], ensure_ascii=False))
                i += 1
            args.extend([plan_id, company_id])
            row = await conn.fetchrow(
                f"""
                UPDATE benefit_plans SET {", ".join(updates)}
                WHERE id = ${i} AND company_id = ${i + 1}
                RETURNING {_PLAN_COLUMNS}
                """,
                *args,
            )
            return _row_to_plan(row) if row else None
        finally:
            await conn.close()

    async def toggle_status(self, plan_id: int, company_id: str) -> dict[str, Any] | None:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                UPDATE benefit_plans SET is_active = NOT is_active, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND company_id = $2
                RETURNING {_PLAN_COLUMNS}
                """,
                plan_id,
                company_id,
            )
            return _row_to_plan(row) if row else None
        finally:
            await conn.close()

    async def delete(self, plan_id: int, company_id: str) -> bool:
        conn = await get_conn()
        try:
            result = await conn.execute(
                "DELETE FROM benefit_plans WHERE id = $1 AND company_id = $2",
                plan_id,
                company_id,
            )
            return result.split()[-1] == "1"
        finally:
            await conn.close()


class EnrollmentRepository:

    _SELECT = """
        SELECT e.id, e.company_id, e.user_id, e.plan_id, p.name AS plan_name,
               e.coverage_level, e.status, e.effective_date, e.created_at
        FROM benefit_enrollments e
        JOIN benefit_plans p ON p.id = e.plan_id
    """

    async def create(
        self,
        company_id: str,
        user_id: int,
        plan_id: int,
        coverage_level: str,
        effective_date=None,
    ) -> dict[str, Any] | None:
        """None when the user already has an active enrollment in the plan."""
        conn = await get_conn()
        try:
            new_id = await conn.fetchval(
                """
                INSERT INTO benefit_enrollments (company_id, user_id, plan_id, coverage_level, effective_date)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT DO NOTHING
                RETURNING id
                """,
                company_id,
                user_id,
                plan_id,
                coverage_level,
                effective_date,
            )
            if new_id is None:
                return None
            row = await conn.fetchrow(self._SELECT + " WHERE e.id = $1", new_id)
            return _row_to_enrollment(row)
        finally:
            await conn.close()

    async def list_by_user(self, user_id: int, company_id: str) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                self._SELECT + " WHERE e.user_id = $1 AND e.company_id = $2 ORDER BY e.created_at DESC",
                user_id,
                company_id,
            )
            return [_row_to_enrollment(r) for r in rows]
        finally:
            await conn.close()

    async def list_by_company(self, company_id: str, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                self._SELECT + " WHERE e.company_id = $1 ORDER BY e.created_at DESC LIMIT $2 OFFSET $3",
                company_id,
                limit,
                offset,
            )
            return [_row_to_enrollment(r) for r in rows]
        finally:
            await conn.close()


benefit_plan_repository = BenefitPlanRepository()
enrollment_repository = EnrollmentRepository()
