"""
analytics_events and audit_logs (asyncpg).

message_sent / chat_error events carry event_data keys:
model, tokens, prompt_tokens, completion_tokens, cost, response_time_ms, source.
"""
import json
from datetime import datetime
from typing import Any

import asyncpg

from infra.postgres.service import get_conn

_RANGE = "($2::timestamptz IS NULL OR e.created_at >= $2) AND ($3::timestamptz IS NULL OR e.created_at < $3)"


def _jsonb(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_audit(row: asyncpg.Record) -> dict[str, Any]:
    d = dict(row)
    d["details"] = _jsonb(d.get("details"))
    return d


class AnalyticsRepository:

    async def insert_event(
        self,
        event_type: str,
        company_id: str | None,
        user_id: int | None,
        event_data: dict[str, Any] | None = None,
        conversation_id: str | None = None,
        session_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> int:
        conn = await get_conn()
        try:
            return await conn.fetchval(
                """
                INSERT INTO analytics_events (
                    company_id, user_id, conversation_id, event_type, event_data,
                    session_id, ip_address, user_agent
                ) VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8)
                RETURNING id
                """,
                company_id,
                user_id,
                conversation_id,
                event_type,
                json.dumps(event_data or {}, ensure_ascii=False, default=str),
                session_id,
                ip_address,
                user_agent,
            )
        finally:
            await conn.close()

    async def message_stats(
        self,
        company_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        """Aggregates over message_sent and chat_error events."""
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                f"""
                SELECT
                    COUNT(*) FILTER (WHERE e.event_type = 'message_sent')::int AS total_messages,
                    COUNT(*) FILTER (WHERE e.event_type = 'chat_error')::int AS total_errors,
                    COUNT(DISTINCT e.user_id)
                        FILTER (WHERE e.event_type = 'message_sent')::int AS unique_users,
                    COUNT(DISTINCT e.conversation_id)
                        FILTER (WHERE e.event_type = 'message_sent')::int AS active_conversations,
                    AVG((e.event_data->>'response_time_ms')::float)
                        FILTER (WHERE e.event_type = 'message_sent') AS avg_response_time,
                    AVG((e.event_data->>'tokens')::float)
                        FILTER (WHERE e.event_type = 'message_sent') AS avg_tokens,
                    COALESCE(SUM((e.event_data->>'cost')::float)
                        FILTER (WHERE e.event_type = 'message_sent'), 0) AS total_cost
                FROM analytics_events e
                WHERE e.company_id = $1 AND {_RANGE}
                """,
                company_id,
                start,
                end,
            )
            return dict(row)
        finally:
            await conn.close()

    async def cost_by_model(
        self,
        company_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT COALESCE(e.event_data->>'model', 'unknown') AS model,
                       COUNT(*)::int AS count,
                       COALESCE(SUM((e.event_data->>'cost')::float), 0) AS cost
                FROM analytics_events e
                WHERE e.company_id = $1 AND e.event_type = 'message_sent' AND {_RANGE}
                GROUP BY 1
                ORDER BY cost DESC
                """,
                company_id,
                start,
                end,
            )
            return [dict(r) for r in rows]
        finally:
            await conn.close()

    async def messages_by_hour(
        self,
        company_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT EXTRACT(HOUR FROM e.created_at)::int AS hour, COUNT(*)::int AS count
                FROM analytics_events e
                WHERE e.company_id = $1 AND e.event_type = 'message_sent' AND {_RANGE}
                GROUP BY 1
                ORDER BY 1
                """,
                company_id,
                start,
                end,
            )
            return [dict(r) for r in rows]
        finally:
            await conn.close()

    async def messages_by_day(self, company_id: str, since: datetime) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                """
                SELECT to_char(date_trunc('day', created_at), 'YYYY-MM-DD') AS date, COUNT(*)::int AS count
                FROM analytics_events
                WHERE company_id = $1 AND event_type = 'message_sent' AND created_at >= $2
                GROUP BY 1
                ORDER BY 1
                """,
                company_id,
                since,
            )
            return [dict(r) for r in rows]
        finally:
            await conn.close()

    async def daily_cost(
        self,
        company_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT to_char(date_trunc('day', e.created_at), 'YYYY-MM-DD') AS date,
                       COALESCE(SUM((e.event_data->>'cost')::float), 0) AS cost
                FROM analytics_events e
                WHERE e.company_id = $1 AND e.event_type = 'message_sent' AND {_RANGE}
                GROUP BY 1
                ORDER BY 1
                """,
                company_id,
                start,
                end,
            )
            return [dict(r) for r in rows]
        finally:
            await conn.close()

    async def cost_by_user(
        self,
        company_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                f"""
                SELECT e.user_id, u.email AS user_email,
                       COALESCE(SUM((e.event_data->>'cost')::float), 0) AS cost
                FROM analytics_events e
                LEFT JOIN users u ON u.id = e.user_id
                WHERE e.company_id = $1 AND e.event_type = 'message_sent' AND {_RANGE}
                GROUP BY e.user_id, u.email
                ORDER BY cost DESC
                LIMIT $4
                """,
                company_id,
                start,
                end,
                limit,
            )
            return [dict(r) for r in rows]
        finally:
            await conn.close()

    async def recent_user_questions(self, company_id: str, sample: int = 1000) -> list[str]:
        """Newest user messages longer than 10 characters from the company's conversations."""
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                """
                SELECT m.content
                FROM messages m
                JOIN conversations c ON c.id = m.conversation_id
                WHERE c.company_id = $1 AND m.role = 'user' AND length(m.content) > 10
                ORDER BY m.created_at DESC
                LIMIT $2
                """,
                company_id,
                sample,
            )
            return [r["content"] for r in rows]
        finally:
            await conn.close()

    async def user_activity(self, user_id: int, company_id: str, since: datetime) -> dict[str, Any]:
        conn = await get_conn()
        try:
            row = await conn.fetchrow(
                """
                SELECT COUNT(DISTINCT conversation_id)::int AS total_chats,
                       COUNT(*)::int AS total_messages,
                       MAX(created_at) AS last_active
                FROM analytics_events
                WHERE user_id = $1 AND company_id = $2 AND event_type = 'message_sent' AND created_at >= $3
                """,
                user_id,
                company_id,
                since,
            )
            models = await conn.fetch(
                """
                SELECT event_data->>'model' AS model, COUNT(*)::int AS count
                FROM analytics_events
                WHERE user_id = $1 AND company_id = $2 AND event_type = 'message_sent'
                  AND created_at >= $3 AND event_data ? 'model'
                GROUP BY 1
                ORDER BY count DESC
                LIMIT 5
                """,
                user_id,
                company_id,
                since,
            )
            out = dict(row)
            out["top_models"] = [dict(m) for m in models]
            return out
        finally:
            await conn.close()


class AuditRepository:

    async def insert(self, **fields: Any) -> int:
        conn = await get_conn()
        try:
            return await conn.fetchval(
                """
                INSERT INTO audit_logs (
                    action, resource_type, resource_id, user_id, user_email, user_role,
                    company_id, details, ip_address, user_agent, success, error_message
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9, $10, $11, $12)
                RETURNING id
                """,
                fields["action"],
                fields["resource_type"],
                fields.get("resource_id"),
                fields.get("user_id"),
                fields.get("user_email"),
                fields.get("user_role"),
                fields.get("company_id"),
                json.dumps(fields.get("details") or {}, ensure_ascii=False, default=str),
                fields.get("ip_address"),
                fields.get("user_agent"),
                fields.get("success", True),
                fields.get("error_message"),
            )
        finally:
            await conn.close()

    async def list_by_company(
        self,
        company_id: str,
        limit: int = 50,
        offset: int = 0,
        action: str | None = None,
    ) -> list[dict[str, Any]]:
        conn = await get_conn()
        try:
            rows = await conn.fetch(
                """
                SELECT id, action, resource_type, resource_id, user_id, user_email, user_role,
                       company_id, details, ip_address, user_agent, success, error_message, created_at
                FROM audit_logs
                WHERE company_id = $1 AND ($2::varchar IS NULL OR action = $2)
                ORDER BY created_at DESC
                LIMIT $3 OFFSET $4
                """,
                company_id,
                action,
                limit,
                offset,
            )
            return [_row_to_audit(r) for r in rows]
        finally:
            await conn.close()


analytics_repository = AnalyticsRepository()
audit_repository = AuditRepository()
