"""
Chat routes: POST /api/chat (SSE or JSON) and the WebSocket variant.
Read path: FAQ -> response cache -> retrieval + routed LLM; write path: DB first, then the Redis window.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from auth import CurrentUser, decode_token, get_current_user
from auth.roles import EMPLOYEE, normalize_legacy_role
from models import ChatRequest
from services.chat_pipeline import complete_chat, prepare_chat, run_chat, stream_chat

router = APIRouter(prefix="/chat", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("", summary="Send a chat message")
async def chat(
    request: ChatRequest,
    user: Annotated[CurrentUser, Depends(get_current_user)],
):
    """
    Send a chat message.

    - **stream=true**: SSE `data: {"content", "done"}` frames; the last frame carries
      conversation_id, model, source, usage and cost.
    - **stream=false**: one ChatResponse.
    - **conversation_id**: optional; a new conversation is created when omitted.
    """
    plan = await prepare_chat(request, user)
    if request.stream:
        return StreamingResponse(
            stream_chat(plan, request.temperature, request.max_tokens),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )
    return await complete_chat(plan, request.temperature, request.max_tokens)


def _user_from_token(token: str) -> CurrentUser | None:
    payload = decode_token(token)
    if not payload or "sub" not in payload:
        return None
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        return None
    return CurrentUser(
        id=user_id,
        role=normalize_legacy_role(payload.get("role")) or EMPLOYEE,
        company_id=payload.get("company_id"),
        email=payload.get("email"),
    )


@router.websocket("/ws")
async def websocket_chat(websocket: WebSocket):
    """
    WebSocket chat. Each frame is a ChatRequest; the first one must carry `token`.
    Replies use the same {"content", "done"} frames as the SSE endpoint.
    """
    await websocket.accept()
    user: CurrentUser | None = None

    try:
        while True:
            data = await websocket.receive_json()
            if user is None:
                user = _user_from_token(str(data.pop("token", "") or ""))
                if user is None:
                    await websocket.send_json({"error": "Authentication required", "done": True})
                    await websocket.close(code=1008)
                    return
            else:
                data.pop("token", None)

            try:
                request = ChatRequest(**data)
            except ValidationError as e:
                await websocket.send_json({"error": f"Invalid request: {e}", "done": True})
                continue

            try:
                plan = await prepare_chat(request, user)
            except HTTPException as e:
                await websocket.send_json({"error": e.detail, "done": True})
                continue

            if request.stream:
                async for frame in run_chat(plan, request.temperature, request.max_tokens):
                    await websocket.send_json(frame)
            else:
                try:
                    response = await complete_chat(plan, request.temperature, request.max_tokens)
                except HTTPException as e:
                    await websocket.send_json({"error": e.detail, "done": True})
                    continue
                await websocket.send_json({**response.model_dump(), "done": True})

    except WebSocketDisconnect:
        return
