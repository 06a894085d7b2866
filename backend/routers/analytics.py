"""
Analytics routes (company-admin, company scoped) and the LLM routing report
"""
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from auth import CurrentUser, require_role, resolve_company_id
from auth.roles import COMPANY_ADMIN
from db import user_repository
from models import LLMRoutingAction
from services import analytics
from services.audit import log_user_action
from services.llm_router import build_routing_report, llm_router

router = APIRouter(prefix="/analytics", tags=["analytics"])
AdminUser = Annotated[CurrentUser, Depends(require_role(COMPANY_ADMIN))]


@router.get("/chat", summary="Chat usage and cost")
async def chat_analytics(
    user: AdminUser,
    company_id: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
):
    return await analytics.get_chat_analytics(resolve_company_id(user, company_id), start, end)


@router.get("/cost-breakdown", summary="Daily and per-user cost")
async def cost_breakdown(
    user: AdminUser,
    company_id: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
):
    return await analytics.get_cost_breakdown(resolve_company_id(user, company_id), start, end)


@router.get("/top-questions", summary="Most asked questions")
async def top_questions(
    user: AdminUser,
    company_id: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=100),
):
    return await analytics.get_top_questions(resolve_company_id(user, company_id), limit)


@router.get("/users/{user_id}/activity", summary="Activity of one user")
async def user_activity(
    user_id: int,
    user: AdminUser,
    company_id: Optional[str] = Query(None),
    days: int = Query(30, ge=1, le=365),
):
    scope = resolve_company_id(user, company_id)
    target = await user_repository.get_by_id(user_id)
    if not target or target["company_id"] != scope:
        raise HTTPException(status_code=404, detail="User not found")
    return await analytics.get_user_activity(user_id, scope, days)


@router.get("/llm-routing", summary="Router stats, catalog and recommendations")
async def llm_routing(user: AdminUser, estimated_tokens: Optional[int] = Query(None, ge=1, le=10_000_000)):
    return build_routing_report(llm_router, estimated_tokens)


@router.post("/llm-routing", summary="Router actions")
async def llm_routing_action(body: LLMRoutingAction, user: AdminUser, request: Request):
    """Only `reset` is supported."""
    if body.action != "reset":
        raise HTTPException(status_code=400, detail=f"Unsupported action '{body.action}'")
    llm_router.reset_stats()
    await log_user_action(user, "llm_routing_reset", "llm_router", None, None, request)
    return {"message": "Routing statistics reset"}
