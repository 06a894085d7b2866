"""Analytics aggregates and the audit log (repositories monkeypatched)"""
import asyncio

import pytest

from services import analytics, audit


def test_build_chat_analytics_ratios() -> None:
    stats = {
        "total_messages": 30,
        "total_errors": 10,
        "unique_users": 4,
        "avg_response_time": 1200.5,
        "avg_tokens": 250,
        "total_cost": 1.5,
    }
    out = analytics.build_chat_analytics(
        stats,
        total_conversations=10,
        cost_by_model=[{"model": "gpt-4o-mini", "count": 25, "cost": 0.5}, {"model": "gpt-4o", "count": 5, "cost": 1.0}],
        messages_by_hour=[{"hour": 9, "count": 12}],
        messages_by_day=[{"date": "2026-10-01", "count": 30}],
    )
    assert out["total_conversations"] == 10
    assert out["avg_messages_per_conversation"] == 3.0
    assert out["error_rate"] == pytest.approx(25.0)
    assert out["avg_cost_per_conversation"] == pytest.approx(0.15)
    assert out["cost_by_model"] == {"gpt-4o-mini": 0.5, "gpt-4o": 1.0}
    assert out["messages_by_hour"] == [{"hour": 9, "count": 12}]
    assert out["unique_users"] == 4


def test_build_chat_analytics_empty_is_zero() -> None:
    out = analytics.build_chat_analytics({}, 0, [], [], [])
    assert out["avg_messages_per_conversation"] == 0
    assert out["error_rate"] == 0
    assert out["avg_cost_per_conversation"] == 0
    assert out["total_cost"] == 0
    assert out["cost_by_model"] == {}


def test_count_top_questions_normalizes_and_keeps_order() -> None:
    questions = [
        "What is my deductible?",
        "How do I add a dependent?",
        "what is my deductible?  ",
        "How do I add a dependent?",
        "When does open enrollment end?",
        "",
    ]
    top = analytics.count_top_questions(questions, limit=2)
    assert top == [
        {"question": "what is my deductible?", "count": 2},
        {"question": "how do i add a dependent?", "count": 2},
    ]


def test_get_chat_analytics_queries_company(monkeypatch) -> None:
    seen = []

    async def message_stats(company_id, start, end):
        seen.append(company_id)
        return {"total_messages": 4, "total_errors": 0, "total_cost": 0.2}

    async def count_by_company(company_id, start, end):
        return 2

    async def empty(*args, **kwargs):
        return []

    monkeypatch.setattr(analytics.analytics_repository, "message_stats", message_stats)
    monkeypatch.setattr(analytics.conversation_repository, "count_by_company", count_by_company)
    monkeypatch.setattr(analytics.analytics_repository, "cost_by_model", empty)
    monkeypatch.setattr(analytics.analytics_repository, "messages_by_hour", empty)
    monkeypatch.setattr(analytics.analytics_repository, "messages_by_day", empty)

    out = asyncio.run(analytics.get_chat_analytics("acme"))
    assert seen == ["acme"]
    assert out["avg_messages_per_conversation"] == 2.0
    assert out["avg_cost_per_conversation"] == pytest.approx(0.1)


def test_get_cost_breakdown(monkeypatch) -> None:
    async def daily_cost(company_id, start, end):
        return [{"date": "2026-10-01", "cost": 0.25}, {"date": "2026-10-02", "cost": 0.5}]

    async def cost_by_user(company_id, start, end, limit=20):
        assert limit == 20
        return [{"user_id": 3, "user_email": "a@acme.com", "cost": 0.75}]

    monkeypatch.setattr(analytics.analytics_repository, "daily_cost", daily_cost)
    monkeypatch.setattr(analytics.analytics_repository, "cost_by_user", cost_by_user)

    out = asyncio.run(analytics.get_cost_breakdown("acme"))
    assert out["total"] == pytest.approx(0.75)
    assert out["by_user"][0]["user_email"] == "a@acme.com"


def test_track_event_safe_swallows_errors(monkeypatch) -> None:
    async def broken(**kwargs):
        raise OSError("db down")

    monkeypatch.setattr(analytics.analytics_repository, "insert_event", broken)
    assert asyncio.run(analytics.track_event_safe("acme", 1, analytics.MESSAGE_SENT, {"model": "gpt-4o"})) is None
    with pytest.raises(OSError):
        asyncio.run(analytics.track_event("acme", 1, analytics.MESSAGE_SENT))


def test_audit_log_event_never_raises(monkeypatch, caplog) -> None:
    async def broken(**kwargs):
        raise OSError("db down")

    monkeypatch.setattr(audit.audit_repository, "insert", broken)
    with caplog.at_level("ERROR", logger="services.audit"):
        assert asyncio.run(audit.log_event("faq_created", "faq", 5, company_id="acme")) is None
    assert "[Audit]" in caplog.text


def test_audit_log_event_stringifies_resource_id(monkeypatch) -> None:
    captured = {}

    async def insert(**kwargs):
        captured.update(kwargs)
        return 11

    monkeypatch.setattr(audit.audit_repository, "insert", insert)
    assert asyncio.run(audit.log_event("faq_created", "faq", 5, user_id=2, company_id="acme")) == 11
    assert captured["resource_id"] == "5"
    assert captured["success"] is True
