"""
Chat/RAG pipeline shared by POST /api/chat and the WebSocket endpoint.

prepare_chat resolves the conversation and picks the answer source
(FAQ, response cache or LLM); run_chat produces the reply frames and
does the bookkeeping once the reply is complete.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Optional

from fastapi import HTTPException

from auth.dependencies import CurrentUser
from auth.roles import COMPANY_ADMIN, has_role_access
from config import MODEL_CATALOG, get_cheapest_model_id, get_model_config
from db.company_repository import company_repository
from db.conversation_repository import conversation_repository
from models import ChatRequest, ChatResponse, Message, Role
from rag import service as rag_service
from services import analytics, response_cache
from services.chat_context import CONTEXT_WINDOW_SIZE, get_context, persist_round
from services.faq_answers import find_static_answer
from services.llm_router import calculate_confidence, estimate_cost, llm_router
from services.llm_service import LLMService, estimate_tokens, estimate_usage, sse_event
from services.prompts import build_system_prompt

logger = logging.getLogger("services.chat_pipeline")

SOURCE_FAQ = "faq"
SOURCE_CACHE = "cache"
SOURCE_LLM = "llm"

TITLE_CHARS = 50
RETRIEVAL_LIMIT = 5
ALL_MODELS_FAILED = "All LLM services unavailable"

_ALLOWED_ROLES = {r.value for r in Role}


@dataclass
class ChatPlan:
    """Everything decided before the first reply token."""
    conversation_id: str
    company_id: str
    user_id: int
    query: str
    source: str
    answer: Optional[str] = None
    model: Optional[str] = None
    routing_reason: Optional[str] = None
    category: Optional[str] = None
    messages: list[Message] = field(default_factory=list)


@dataclass
class ChatOutcome:
    content: str
    model: Optional[str]
    usage: dict
    cost: float
    response_time_ms: float
    finish_reason: Optional[str] = None
    is_fallback: bool = False


def _zero_usage() -> dict:
    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


def _validate_request(request: ChatRequest, user: CurrentUser) -> str:
    if not request.messages:
        raise HTTPException(status_code=400, detail="Messages must not be empty")
    last = request.messages[-1]
    if last.role != Role.USER or not last.content.strip():
        raise HTTPException(status_code=400, detail="The last message must be a non-empty user message")
    if not user.company_id:
        raise HTTPException(status_code=400, detail="User is not assigned to a company")
    return last.content


async def _resolve_conversation(request: ChatRequest, user: CurrentUser, query: str) -> dict[str, Any]:
    if request.conversation_id:
        conv = await conversation_repository.get_by_id(request.conversation_id)
        if not conv:
            raise HTTPException(status_code=404, detail="Conversation not found")
        if conv["user_id"] != user.id or conv["company_id"] != user.company_id:
            raise HTTPException(status_code=403, detail="Access to this conversation is not allowed")
        return conv
    return await conversation_repository.create(
        str(uuid.uuid4()),
        user_id=user.id,
        company_id=user.company_id,
        title=query[:TITLE_CHARS],
    )


def _resolve_override(request: ChatRequest, user: CurrentUser) -> Optional[str]:
    if not request.model_id:
        return None
    if not has_role_access(user.role, COMPANY_ADMIN):
        raise HTTPException(status_code=403, detail="Model override requires company-admin or higher")
    if request.model_id not in MODEL_CATALOG:
        raise HTTPException(status_code=400, detail=f"Unknown model '{request.model_id}'")
    return request.model_id


async def _company_name(company_id: str) -> Optional[str]:
    try:
        company = await company_repository.get_by_id(company_id)
    except Exception as e:
        logger.warning(f"[Chat] company lookup failed: {e}")
        return None
    return company["name"] if company else None


async def _retrieve_context(query: str, company_id: str) -> Optional[str]:
    try:
        hits = await rag_service.search(query, company_id, RETRIEVAL_LIMIT)
    except Exception as e:
        logger.warning(f"[Chat] retrieval failed, continuing without context: {e}")
        return None
    if not hits:
        return None
    return rag_service.generate_context(hits)


async def _build_messages(
    conversation: dict[str, Any],
    company_id: str,
    context: Optional[str],
    query: str,
) -> list[Message]:
    """[system prompt] + [last 20 history messages] + [new user message]."""
    system = build_system_prompt(
        company_name=await _company_name(company_id),
        conversation_prompt=conversation.get("system_prompt"),
        context=context,
    )
    messages = [Message(role=Role.SYSTEM, content=system)]
    for m in await get_context(conversation["id"], CONTEXT_WINDOW_SIZE):
        if m.get("role") in _ALLOWED_ROLES:
            messages.append(Message(role=Role(m["role"]), content=m.get("content") or ""))
    messages.append(Message(role=Role.USER, content=query))
    return messages


async def prepare_chat(request: ChatRequest, user: CurrentUser) -> ChatPlan:
    """Validate, resolve the conversation and decide where the answer comes from."""
    query = _validate_request(request, user)
    override = _resolve_override(request, user)
    conversation = await _resolve_conversation(request, user, query)
    plan = ChatPlan(
        conversation_id=conversation["id"],
        company_id=user.company_id,
        user_id=user.id,
        query=query,
        source=SOURCE_LLM,
    )

    faq = await find_static_answer(user.company_id, query)
    if faq:
        logger.info(f"[Chat] FAQ hit {faq['id']} for company={user.company_id}")
        plan.source = SOURCE_FAQ
        plan.answer = faq["answer"]
        plan.category = faq.get("category") or "faq"
        return plan

    cached = await response_cache.get_cached_response(user.company_id, query)
    if cached is not None:
        logger.info(f"[Chat] cache hit for company={user.company_id}")
        plan.source = SOURCE_CACHE
        plan.answer = cached
        return plan

    context = await _retrieve_context(query, user.company_id)
    if override:
        plan.model = override
        plan.routing_reason = "Admin model override"
    else:
        decision = await llm_router.route_query(query, context, user.company_id, request.priority)
        plan.model = decision.model
        plan.routing_reason = decision.reason
        plan.category = decision.complexity.category
    plan.messages = await _build_messages(conversation, user.company_id, context, query)
    return plan


def _candidate_models(primary: str) -> list[str]:
    """Routed model, then one retry on the cheapest model (the same model when it was routed)."""
    return [primary, get_cheapest_model_id()]


def _static_outcome(plan: ChatPlan) -> ChatOutcome:
    return ChatOutcome(
        content=plan.answer or "", model=None, usage=_zero_usage(), cost=0.0, response_time_ms=0.0, finish_reason="stop"
    )


def _outcome_from_llm(
    model_id: str,
    messages: list[Message],
    content: str,
    usage: Optional[dict],
    finish_reason: Optional[str],
    started: float,
    is_fallback: bool,
) -> ChatOutcome:
    usage = usage or estimate_usage(messages, content)
    return ChatOutcome(
        content=content,
        model=model_id,
        usage=usage,
        cost=estimate_cost(model_id, usage["prompt_tokens"], usage["completion_tokens"]),
        response_time_ms=(time.monotonic() - started) * 1000,
        finish_reason=finish_reason,
        is_fallback=is_fallback,
    )


async def _finalize(plan: ChatPlan, outcome: ChatOutcome) -> float:
    """Persist the round, cache LLM answers, record router stats and track message_sent. Returns confidence."""
    confidence = calculate_confidence(outcome.content, outcome.finish_reason)
    await persist_round(
        plan.conversation_id,
        plan.query,
        outcome.content,
        assistant_metadata={
            "model": outcome.model,
            "usage": outcome.usage,
            "cost": outcome.cost,
            "response_time_ms": outcome.response_time_ms,
            "routing_reason": plan.routing_reason,
            "source": plan.source,
            "confidence": confidence,
            "is_fallback": outcome.is_fallback,
        },
        model_id=outcome.model,
        user_tokens=estimate_tokens(plan.query),
        assistant_tokens=outcome.usage.get("completion_tokens", 0),
    )

    if plan.source == SOURCE_LLM:
        await response_cache.set_cached_response(plan.company_id, plan.query, outcome.content)
        llm_router.record_response(
            outcome.model,
            outcome.response_time_ms,
            outcome.cost,
            baseline_cost=llm_router.baseline_cost(
                outcome.usage["prompt_tokens"], outcome.usage["completion_tokens"]
            ),
        )

    await analytics.track_event_safe(
        plan.company_id,
        plan.user_id,
        analytics.MESSAGE_SENT,
        {
            "conversation_id": plan.conversation_id,
            "model": outcome.model,
            "tokens": outcome.usage.get("total_tokens", 0),
            "prompt_tokens": outcome.usage.get("prompt_tokens", 0),
            "completion_tokens": outcome.usage.get("completion_tokens", 0),
            "cost": outcome.cost,
            "response_time_ms": outcome.response_time_ms,
            "source": plan.source,
            "category": plan.category,
            "is_fallback": outcome.is_fallback,
        },
        conversation_id=plan.conversation_id,
    )
    return confidence


async def _track_error(plan: ChatPlan, error: str, model: Optional[str]) -> None:
    await analytics.track_event_safe(
        plan.company_id,
        plan.user_id,
        analytics.CHAT_ERROR,
        {"conversation_id": plan.conversation_id, "model": model, "error": error, "source": plan.source},
        conversation_id=plan.conversation_id,
    )


def _done_frame(plan: ChatPlan, outcome: ChatOutcome) -> dict:
    return {
        "content": "",
        "done": True,
        "conversation_id": plan.conversation_id,
        "model": outcome.model,
        "source": plan.source,
        "usage": outcome.usage,
        "cost": outcome.cost,
        "is_fallback": outcome.is_fallback,
    }


async def run_chat(
    plan: ChatPlan,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> AsyncGenerator[dict, None]:
    """
    Reply frames as dicts: {"content", "done": False} deltas, then one final frame.
    Never raises; failures end with {"error", "done": True}.
    """
    if plan.source != SOURCE_LLM:
        outcome = _static_outcome(plan)
        yield {"content": outcome.content, "done": False}
        try:
            await _finalize(plan, outcome)
        except Exception as e:
            logger.error(f"[Chat] persisting {plan.source} answer failed: {e}")
            yield {"error": str(e), "done": True}
            return
        yield _done_frame(plan, outcome)
        return

    outcome: Optional[ChatOutcome] = None
    last_error = ""
    for attempt, model_id in enumerate(_candidate_models(plan.model)):
        llm = LLMService(get_model_config(model_id))
        started = time.monotonic()
        parts: list[str] = []
        try:
            async for delta in llm.chat_stream(plan.messages, temperature, max_tokens):
                parts.append(delta)
                yield {"content": delta, "done": False}
        except Exception as e:
            last_error = str(e)
            logger.error(f"[Chat] model {model_id} failed: {e}")
            await _track_error(plan, last_error, model_id)
            if parts:
                # already streamed part of a reply; retrying would duplicate it
                yield {"error": f"LLM stream interrupted: {e}", "done": True}
                return
            continue
        outcome = _outcome_from_llm(
            model_id, plan.messages, "".join(parts), llm.last_usage, llm.finish_reason, started, attempt > 0
        )
        break

    if outcome is None:
        logger.error(f"[Chat] {ALL_MODELS_FAILED}: {last_error}")
        yield {"error": ALL_MODELS_FAILED, "done": True}
        return

    try:
        await _finalize(plan, outcome)
    except Exception as e:
        logger.error(f"[Chat] persisting reply failed: {e}")
        await _track_error(plan, str(e), outcome.model)
        yield {"error": str(e), "done": True}
        return
    yield _done_frame(plan, outcome)


async def stream_chat(
    plan: ChatPlan,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> AsyncGenerator[str, None]:
    """run_chat as SSE frames."""
    async for frame in run_chat(plan, temperature, max_tokens):
        yield sse_event(frame)


async def complete_chat(
    plan: ChatPlan,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> ChatResponse:
    """Non-streaming reply; 502 when every candidate model fails."""
    if plan.source != SOURCE_LLM:
        outcome = _static_outcome(plan)
    else:
        outcome = None
        for attempt, model_id in enumerate(_candidate_models(plan.model)):
            llm = LLMService(get_model_config(model_id))
            started = time.monotonic()
            try:
                content, usage, finish_reason = await llm.chat_with_usage(plan.messages, temperature, max_tokens)
            except Exception as e:
                logger.error(f"[Chat] model {model_id} failed: {e}")
                await _track_error(plan, str(e), model_id)
                continue
            outcome = _outcome_from_llm(
                model_id, plan.messages, content, usage, finish_reason, started, attempt > 0
            )
            break
        if outcome is None:
            raise HTTPException(status_code=502, detail=ALL_MODELS_FAILED)

    confidence = await _finalize(plan, outcome)
    return ChatResponse(
        content=outcome.content,
        model=outcome.model or plan.source,
        conversation_id=plan.conversation_id,
        source=plan.source,
        usage=outcome.usage,
        cost=outcome.cost,
        routing_reason=plan.routing_reason,
        confidence=confidence,
    )
