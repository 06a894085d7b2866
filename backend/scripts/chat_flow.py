#!/usr/bin/env python
"""
Manual end-to-end check of the chat data flow against real services.

Walks one question through each answer source:
1. FAQ static answer (company FAQ keyword match)
2. Response cache (Redis, company-scoped)
3. Hybrid router decision (heuristic or LLM classifier)
4. Full pipeline: retrieval, routing, streaming, persistence, analytics

Usage:
  cd backend && python -m scripts.chat_flow

Needs PostgreSQL and Redis; step 4 also needs OPENAI_API_KEY (Milvus optional).
"""
import asyncio
import os
import sys
from uuid import uuid4

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from auth import CurrentUser
from auth.roles import EMPLOYEE
from db import company_repository, faq_repository, message_repository, user_repository
from models import ChatRequest, Message, Role
from services import response_cache
from services.chat_context import get_context
from services.chat_pipeline import prepare_chat, run_chat
from services.faq_answers import find_static_answer
from services.llm_router import llm_router


def _section(title: str) -> None:
    print(f"\n{title}")
    print("-" * 40)


async def main() -> None:
    print("=" * 60)
    print("Chat data flow check")
    print("=" * 60)

    _section("[1] Create a test company, employee and FAQ")
    company = await company_repository.create(str(uuid4()), name="Flow Check Inc", domain="flowcheck.example")
    company_id = company["id"]
    email = f"chat_flow_{uuid4().hex[:8]}@flowcheck.example"
    employee = await user_repository.create(email=email, company_id=company_id, name="Flow Check", role=EMPLOYEE)
    faq = await faq_repository.create(
        company_id,
        question="When is open enrollment?",
        answer="Open enrollment runs November 1-30.",
        keywords=["open enrollment"],
        category="enrollment",
    )
    user = CurrentUser(id=employee["id"], role=EMPLOYEE, company_id=company_id, email=email)
    print(f"company={company_id} user={user.id} faq={faq['id']}")

    _section("[2] FAQ static answer")
    hit = await find_static_answer(company_id, "Open Enrollment")
    print(f"FAQ match: {hit['answer'] if hit else 'none'}")

    _section("[3] Response cache")
    await response_cache.set_cached_response(company_id, "What is PTO?", "Paid time off.")
    print(f"cached: {await response_cache.get_cached_response(company_id, '  what is pto? ')}")
    print(f"invalidated keys: {await response_cache.invalidate_company(company_id)}")

    _section("[4] Router decisions")
    for q in ["What is the dental deductible?", "Please analyze and compare every plan for my family"]:
        decision = await llm_router.route_query(q, company_id=company_id)
        print(f"  {q[:40]!r} -> {decision.model} ({decision.reason})")

    _section("[5] Full pipeline (FAQ answer)")
    plan = await prepare_chat(
        ChatRequest(messages=[Message(role=Role.USER, content="open enrollment")], stream=True),
        user,
    )
    async for frame in run_chat(plan):
        print(f"  frame: {frame}")

    _section("[6] Full pipeline (LLM answer)")
    if not os.getenv("OPENAI_API_KEY"):
        print("skipped: OPENAI_API_KEY is not set")
    else:
        plan = await prepare_chat(
            ChatRequest(
                messages=[Message(role=Role.USER, content="How does an HSA differ from an FSA?")],
                conversation_id=plan.conversation_id,
            ),
            user,
        )
        print(f"routed to {plan.model}: {plan.routing_reason}")
        parts = []
        async for frame in run_chat(plan, max_tokens=200):
            if frame.get("done"):
                print(f"\n  final: { {k: v for k, v in frame.items() if k != 'content'} }")
            else:
                parts.append(frame["content"])
        print(f"  reply: {''.join(parts)[:120]}...")

    _section("[7] Persisted state")
    print(f"messages in conversation: {await message_repository.count_by_conversation(plan.conversation_id)}")
    print(f"context window: {len(await get_context(plan.conversation_id))} items")
    print(f"router stats: {llm_router.get_stats()}")

    print("\n" + "=" * 60)
    print("Chat data flow check finished")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
