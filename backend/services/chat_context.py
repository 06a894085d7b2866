"""
Conversation hot context: read path (Redis list, DB on miss) and write path
(persist to DB, then append to Redis and trim to the window).
"""
import json
import logging
from typing import Any, Optional

from redis.exceptions import RedisError

from db.conversation_repository import conversation_repository
from db.message_repository import message_repository
from infra.redis import service as redis_service

logger = logging.getLogger("services.chat_context")

CHAT_CONTEXT_KEY_PREFIX = "chat:context:"
CONTEXT_TTL_SECONDS = 86400
CONTEXT_WINDOW_SIZE = 20


def _context_key(conversation_id: str) -> str:
    return f"{CHAT_CONTEXT_KEY_PREFIX}{conversation_id}"


def _message_to_json_item(msg: dict[str, Any]) -> str:
    return json.dumps({"role": msg["role"], "content": msg["content"]}, ensure_ascii=False)


async def get_context(conversation_id: str, limit: int = CONTEXT_WINDOW_SIZE) -> list[dict[str, Any]]:
    """
    Last `limit` messages as [{"role", "content"}], oldest first.
    Redis first; on a miss the DB window is loaded and written back to Redis.
    """
    key = _context_key(conversation_id)
    try:
        raw_list = await redis_service.read_window(key, limit)
    except (RedisError, OSError) as e:
        logger.warning(f"[Chat] context read from Redis failed: {e}")
        raw_list = []

    if raw_list:
        out = []
        for s in raw_list:
            try:
                obj = json.loads(s)
            except (json.JSONDecodeError, TypeError):
                continue
            out.append({"role": obj.get("role", "user"), "content": obj.get("content", "")})
        return out

    rows = await message_repository.get_latest_n(conversation_id, limit)
    out = [{"role": r["role"], "content": r["content"]} for r in rows]

    try:
        await redis_service.push_window(key, [_message_to_json_item(m) for m in out], limit, CONTEXT_TTL_SECONDS)
    except (RedisError, OSError) as e:
        logger.warning(f"[Chat] context warm-up failed: {e}")
    return out


async def append_messages_and_trim(
    conversation_id: str,
    new_messages: list[dict[str, Any]],
    ttl: int = CONTEXT_TTL_SECONDS,
    max_len: int = CONTEXT_WINDOW_SIZE,
) -> None:
    """Call after the DB write: append, trim to the last max_len, refresh TTL."""
    values = [_message_to_json_item(m) for m in new_messages]
    try:
        await redis_service.push_window(_context_key(conversation_id), values, max_len, ttl)
    except (RedisError, OSError) as e:
        logger.warning(f"[Chat] context write to Redis failed: {e}")


async def clear_context(conversation_id: str) -> None:
    try:
        await redis_service.delete_key(_context_key(conversation_id))
    except (RedisError, OSError) as e:
        logger.warning(f"[Chat] context clear failed: {e}")


async def persist_round(
    conversation_id: str,
    user_content: str,
    assistant_content: str,
    assistant_metadata: Optional[dict] = None,
    model_id: Optional[str] = None,
    user_tokens: int = 0,
    assistant_tokens: int = 0,
) -> None:
    """Insert the user and assistant messages, touch the conversation, update the Redis window."""
    await message_repository.create(conversation_id, "user", user_content, token_count=user_tokens)
    await message_repository.create(
        conversation_id,
        "assistant",
        assistant_content,
        token_count=assistant_tokens,
        metadata=assistant_metadata,
    )
    await conversation_repository.touch(conversation_id, last_model=model_id)
    await append_messages_and_trim(
        conversation_id,
        [
            {"role": "user", "content": user_content},
            {"role": "assistant", "content": assistant_content},
        ],
    )
