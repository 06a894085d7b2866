"""
History routes: the caller's conversations (list, detail, create, update, soft delete)
"""
import uuid
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query

from auth import CurrentUser, get_current_user
from db.conversation_repository import conversation_repository
from db.message_repository import message_repository
from models import (
    ConversationCreate,
    ConversationDetailResponse,
    ConversationInfo,
    ConversationUpdate,
    Message,
    Role,
)
from services.chat_context import clear_context

router = APIRouter(prefix="/history", tags=["history"])
User = Annotated[CurrentUser, Depends(get_current_user)]

_ALLOWED_ROLES = {r.value for r in Role}


def _to_info(c: dict, message_count: int = 0) -> ConversationInfo:
    return ConversationInfo(
        id=c["id"],
        title=c["title"],
        last_model=c.get("last_model"),
        created_at=c["created_at"],
        updated_at=c["updated_at"],
        message_count=message_count,
    )


def _ensure_own_conversation(conv: dict | None, user: CurrentUser) -> dict:
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if conv["user_id"] != user.id or conv["company_id"] != user.company_id:
        raise HTTPException(status_code=403, detail="Access to this conversation is not allowed")
    return conv


@router.get("/conversations", response_model=List[ConversationInfo], summary="List conversations")
async def list_conversations(
    user: User,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """Caller's conversations, most recently active first."""
    offset = (page - 1) * page_size
    items = await conversation_repository.list_by_user(user.id, user.company_id, limit=page_size, offset=offset)
    return [_to_info(c, c.get("message_count", 0)) for c in items]


@router.post("/conversations", response_model=ConversationInfo, summary="Create conversation")
async def create_conversation(user: User, body: ConversationCreate):
    """The returned id can be sent as conversation_id to /api/chat."""
    if not user.company_id:
        raise HTTPException(status_code=400, detail="User is not assigned to a company")
    c = await conversation_repository.create(
        str(uuid.uuid4()),
        user_id=user.id,
        company_id=user.company_id,
        title=body.title,
        system_prompt=body.system_prompt,
    )
    return _to_info(c)


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationDetailResponse,
    summary="Conversation detail",
)
async def get_conversation(conversation_id: str, user: User):
    conv = _ensure_own_conversation(await conversation_repository.get_by_id(conversation_id), user)
    messages = await message_repository.list_by_conversation(conversation_id)
    return ConversationDetailResponse(
        id=conv["id"],
        title=conv["title"],
        last_model=conv.get("last_model"),
        created_at=conv["created_at"],
        updated_at=conv["updated_at"],
        messages=[
            Message(role=Role(m["role"]) if m["role"] in _ALLOWED_ROLES else Role.USER, content=m["content"])
            for m in messages
        ],
    )


@router.put(
    "/conversations/{conversation_id}",
    response_model=ConversationInfo,
    summary="Update conversation",
)
async def update_conversation(conversation_id: str, user: User, body: ConversationUpdate):
    """Title and/or per-conversation system prompt."""
    _ensure_own_conversation(await conversation_repository.get_by_id(conversation_id), user)
    updated = await conversation_repository.update(
        conversation_id,
        title=body.title,
        system_prompt=body.system_prompt,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Conversation not found")
    count = await message_repository.count_by_conversation(conversation_id)
    return _to_info(updated, count)


@router.delete("/conversations/{conversation_id}", summary="Delete conversation")
async def delete_conversation(conversation_id: str, user: User):
    """Soft delete; messages are kept for audit."""
    _ensure_own_conversation(await conversation_repository.get_by_id(conversation_id), user)
    await conversation_repository.soft_delete(conversation_id)
    await clear_context(conversation_id)
    return {"message": "Deleted"}
