"""Response cache and FAQ static answers (Redis / repository monkeypatched)"""
import asyncio

from redis.exceptions import ConnectionError as RedisConnectionError

from services import faq_answers, response_cache


def test_cache_key_normalizes_query() -> None:
    assert response_cache.cache_key("acme", "  What Is PTO?  ") == "response_cache:acme:what is pto?"
    assert response_cache.normalize_query(None) == ""


def test_set_and_get_use_company_scoped_key(monkeypatch) -> None:
    store = {}

    async def set_key(key, value, ttl_seconds=None):
        store[key] = (value, ttl_seconds)

    async def get_key(key):
        value = store.get(key)
        return value[0] if value else None

    monkeypatch.setattr(response_cache.redis_service, "set_key", set_key)
    monkeypatch.setattr(response_cache.redis_service, "get_key", get_key)

    asyncio.run(response_cache.set_cached_response("acme", "What is PTO?", "Paid time off."))
    assert store == {"response_cache:acme:what is pto?": ("Paid time off.", 3600)}
    assert asyncio.run(response_cache.get_cached_response("acme", "what is pto?  ")) == "Paid time off."
    assert asyncio.run(response_cache.get_cached_response("globex", "What is PTO?")) is None


def test_cache_errors_are_a_miss(monkeypatch) -> None:
    async def broken(*args, **kwargs):
        raise RedisConnectionError("redis down")

    monkeypatch.setattr(response_cache.redis_service, "get_key", broken)
    monkeypatch.setattr(response_cache.redis_service, "set_key", broken)
    monkeypatch.setattr(response_cache.redis_service, "delete_pattern", broken)

    assert asyncio.run(response_cache.get_cached_response("acme", "q")) is None
    assert asyncio.run(response_cache.set_cached_response("acme", "q", "a")) is None
    assert asyncio.run(response_cache.invalidate_company("acme")) == 0


def test_invalidate_company_pattern(monkeypatch) -> None:
    seen = []

    async def delete_pattern(pattern):
        seen.append(pattern)
        return 4

    monkeypatch.setattr(response_cache.redis_service, "delete_pattern", delete_pattern)
    assert asyncio.run(response_cache.invalidate_company("acme")) == 4
    assert seen == ["response_cache:acme:*"]


def test_faq_static_answer_matches_normalized_query(monkeypatch) -> None:
    calls = []

    async def find_by_keyword(company_id, keyword):
        calls.append((company_id, keyword))
        return {"id": 7, "answer": "Open enrollment ends Nov 30."} if keyword == "open enrollment" else None

    monkeypatch.setattr(faq_answers.faq_repository, "find_by_keyword", find_by_keyword)

    faq = asyncio.run(faq_answers.find_static_answer("acme", "  Open Enrollment "))
    assert faq["id"] == 7
    assert calls == [("acme", "open enrollment")]
    assert asyncio.run(faq_answers.find_static_answer("acme", "something else")) is None
    assert asyncio.run(faq_answers.find_static_answer("acme", "   ")) is None


def test_faq_lookup_failure_is_no_match(monkeypatch) -> None:
    async def broken(company_id, keyword):
        raise OSError("db down")

    monkeypatch.setattr(faq_answers.faq_repository, "find_by_keyword", broken)
    assert asyncio.run(faq_answers.find_static_answer("acme", "pto")) is None
