"""
Chat analytics: event tracking and the admin dashboard aggregates.
"""
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from db.analytics_repository import analytics_repository
from db.conversation_repository import conversation_repository

logger = logging.getLogger("services.analytics")

MESSAGE_SENT = "message_sent"
CHAT_ERROR = "chat_error"
DAILY_WINDOW_DAYS = 30
QUESTION_SAMPLE = 1000


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


async def track_event(
    company_id: Optional[str],
    user_id: Optional[int],
    event_type: str,
    event_data: Optional[dict[str, Any]] = None,
    conversation_id: Optional[str] = None,
    session_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> int:
    """Insert one analytics_events row. Raises on DB errors; request-path callers wrap it."""
    return await analytics_repository.insert_event(
        event_type=event_type,
        company_id=company_id,
        user_id=user_id,
        event_data=event_data,
        conversation_id=conversation_id,
        session_id=session_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )


async def track_event_safe(*args, **kwargs) -> None:
    try:
        await track_event(*args, **kwargs)
    except Exception as e:
        logger.warning(f"[Analytics] event dropped: {e}")


def build_chat_analytics(
    stats: dict[str, Any],
    total_conversations: int,
    cost_by_model: list[dict[str, Any]],
    messages_by_hour: list[dict[str, Any]],
    messages_by_day: list[dict[str, Any]],
) -> dict[str, Any]:
    total_messages = stats.get("total_messages") or 0
    total_errors = stats.get("total_errors") or 0
    total_cost = float(stats.get("total_cost") or 0)
    return {
        "total_conversations": total_conversations,
        "total_messages": total_messages,
        "unique_users": stats.get("unique_users") or 0,
        "avg_messages_per_conversation": _ratio(total_messages, total_conversations),
        "avg_response_time": float(stats.get("avg_response_time") or 0),
        "avg_tokens_per_response": float(stats.get("avg_tokens") or 0),
        "error_rate": _ratio(total_errors, total_messages + total_errors) * 100,
        "total_cost": total_cost,
        "avg_cost_per_conversation": _ratio(total_cost, total_conversations),
        "cost_by_model": {row["model"]: float(row["cost"]) for row in cost_by_model},
        "messages_by_hour": [{"hour": r["hour"], "count": r["count"]} for r in messages_by_hour],
        "messages_by_day": [{"date": r["date"], "count": r["count"]} for r in messages_by_day],
    }


async def get_chat_analytics(
    company_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict[str, Any]:
    since = datetime.now(timezone.utc) - timedelta(days=DAILY_WINDOW_DAYS)
    stats = await analytics_repository.message_stats(company_id, start, end)
    total_conversations = await conversation_repository.count_by_company(company_id, start, end)
    by_model = await analytics_repository.cost_by_model(company_id, start, end)
    by_hour = await analytics_repository.messages_by_hour(company_id, start, end)
    by_day = await analytics_repository.messages_by_day(company_id, since)
    return build_chat_analytics(stats, total_conversations, by_model, by_hour, by_day)


async def get_cost_breakdown(
    company_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict[str, Any]:
    daily = await analytics_repository.daily_cost(company_id, start, end)
    by_user = await analytics_repository.cost_by_user(company_id, start, end, limit=20)
    return {
        "daily": [{"date": r["date"], "cost": float(r["cost"])} for r in daily],
        "by_user": [
            {"user_id": r["user_id"], "user_email": r["user_email"], "cost": float(r["cost"])}
            for r in by_user
        ],
        "total": sum(float(r["cost"]) for r in daily),
    }


def count_top_questions(questions: list[str], limit: int = 10) -> list[dict[str, Any]]:
    """Exact-duplicate counts of normalized questions; ties keep first-seen order."""
    counts = Counter(q.strip().lower() for q in questions if q and q.strip())
    return [{"question": q, "count": n} for q, n in counts.most_common(limit)]


async def get_top_questions(company_id: str, limit: int = 10) -> list[dict[str, Any]]:
    questions = await analytics_repository.recent_user_questions(company_id, QUESTION_SAMPLE)
    return count_top_questions(questions, limit)


async def get_user_activity(user_id: int, company_id: str, days: int = 30) -> dict[str, Any]:
    since = datetime.now(timezone.utc) - timedelta(days=days)
    activity = await analytics_repository.user_activity(user_id, company_id, since)
    return {
        "total_chats": activity.get("total_chats") or 0,
        "total_messages": activity.get("total_messages") or 0,
        "last_active": activity.get("last_active"),
        "top_models": activity.get("top_models") or [],
    }
