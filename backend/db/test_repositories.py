"""SQL sent by repositories, with get_conn swapped for a recording connection"""
import asyncio
import importlib
from datetime import datetime

import pytest

NOW = datetime(2026, 10, 1, 9, 0, 0)


class RecordingConn:
    def __init__(self, rows=None, row=None):
        self.rows = rows or []
        self.row = row
        self.calls = []
        self.closed = False

    async def fetch(self, sql, *args):
        self.calls.append((sql, args))
        return self.rows

    async def fetchrow(self, sql, *args):
        self.calls.append((sql, args))
        return self.row

    async def close(self):
        self.closed = True


@pytest.fixture
def use_conn(monkeypatch):
    def install(module_name, conn):
        async def get_conn():
            return conn

        monkeypatch.setattr(importlib.import_module(module_name), "get_conn", get_conn)
        return conn

    return install


def test_conversations_filtered_by_company_before_paging(use_conn) -> None:
    from db import conversation_repository

    conn = use_conn("db.conversation_repository", RecordingConn(rows=[{
        "id": "c1",
        "user_id": 1,
        "company_id": "acme",
        "title": "Dental",
        "system_prompt": None,
        "last_model": None,
        "created_at": NOW,
        "updated_at": NOW,
        "deleted_at": None,
        "message_count": 4,
    }]))

    items = asyncio.run(conversation_repository.list_by_user(1, "acme", limit=20, offset=40))
    sql, args = conn.calls[0]
    assert "company_id IS NOT DISTINCT FROM $2" in sql
    assert "LIMIT $3 OFFSET $4" in sql
    assert args == (1, "acme", 20, 40)
    assert items[0]["message_count"] == 4
    assert conn.closed


def test_unique_users_counts_chat_users_only(use_conn) -> None:
    from db import analytics_repository

    conn = use_conn("db.analytics_repository", RecordingConn(row={"total_messages": 0, "unique_users": 0}))
    asyncio.run(analytics_repository.message_stats("acme"))
    sql, args = conn.calls[0]
    unique = sql.split("AS unique_users")[0].rsplit("AS total_errors,", 1)[1]
    assert "FILTER (WHERE e.event_type = 'message_sent')" in unique
    assert args == ("acme", None, None)
    assert conn.closed
