"""Hybrid LLM router: heuristic classification, model selection, cost and stats"""
import asyncio

import pytest

from config import COMPLEX_MODEL_ID, SIMPLE_MODEL_ID
from services import llm_router as router_module
from services.llm_router import (
    FALLBACK_COMPLEXITY,
    HybridLLMRouter,
    QueryComplexity,
    analyze_request,
    build_routing_report,
    calculate_confidence,
    categorize,
    estimate_cost,
    heuristic_complexity,
)


def _complexity(level: str, category: str = "benefits", tokens: int = 200, reasoning: bool = False) -> QueryComplexity:
    return QueryComplexity(
        complexity=level,
        category=category,
        estimated_tokens=tokens,
        requires_reasoning=reasoning,
        requires_context=False,
        confidence=0.9,
    )


def test_analyze_request_simple_benefits_question() -> None:
    a = analyze_request("What is the dental deductible?")
    assert a.complexity == "simple"
    assert a.category == "benefits"
    assert a.is_benefits_query
    assert a.estimated_tokens == 100


def test_analyze_request_complex_keywords_and_length() -> None:
    a = analyze_request("Please analyze my options")
    assert a.complexity == "complex"
    assert a.estimated_tokens == 1000

    long_query = " ".join(["word"] * 60)
    assert analyze_request(long_query).complexity == "complex"


def test_analyze_request_defaults_to_moderate() -> None:
    a = analyze_request("Tell me about the vacation policy for new parents")
    assert a.complexity == "moderate"
    assert a.category == "pto"
    assert a.requires_real_time is False


def test_categorize_order() -> None:
    assert categorize("my 401k match") == "benefits"
    assert categorize("sick leave rules") == "pto"
    assert categorize("bonus payout date") == "payroll"
    assert categorize("where is the cafeteria") == "general"


def test_heuristic_complexity_maps_categories() -> None:
    assert heuristic_complexity(analyze_request("Please analyze my options")).category == "analysis"
    assert heuristic_complexity(analyze_request("What is the dental deductible?")).category == "benefits"
    assert heuristic_complexity(analyze_request("where is the cafeteria")).category == "faq"


def test_select_model_rules() -> None:
    router = HybridLLMRouter(rng=lambda: 0.0)
    assert router.select_model(_complexity("simple"))[0] == SIMPLE_MODEL_ID
    assert router.select_model(_complexity("complex"))[0] == COMPLEX_MODEL_ID
    # moderate: primary below the 0.6 threshold, fallback above it
    assert router.select_model(_complexity("moderate"), rng=lambda: 0.59)[0] == SIMPLE_MODEL_ID
    assert router.select_model(_complexity("moderate"), rng=lambda: 0.6)[0] == COMPLEX_MODEL_ID


def test_select_model_overrides() -> None:
    router = HybridLLMRouter(rng=lambda: 0.0)
    model, reason = router.select_model(_complexity("simple", category="technical", reasoning=True))
    assert (model, reason) == (COMPLEX_MODEL_ID, "Technical query requiring reasoning")

    model, reason = router.select_model(_complexity("simple", tokens=6000))
    assert (model, reason) == (COMPLEX_MODEL_ID, "Large response expected")

    model, reason = router.select_model(_complexity("simple", category="faq"))
    assert (model, reason) == (SIMPLE_MODEL_ID, "Simple FAQ query")

    _, reason = router.select_model(_complexity("complex", category="analysis"))
    assert reason == f"complex complexity query routed to {COMPLEX_MODEL_ID}"


def test_calculate_confidence() -> None:
    assert calculate_confidence("x" * 60, "stop") == 1.0
    assert calculate_confidence("I don't know", None) == 0.8
    assert calculate_confidence("short", "length") == pytest.approx(0.85)


def test_estimate_cost() -> None:
    assert estimate_cost(COMPLEX_MODEL_ID, 1_000_000, 1_000_000) == pytest.approx(40.0)
    assert estimate_cost(SIMPLE_MODEL_ID, 2000, 1000) == pytest.approx(0.0025)
    assert estimate_cost("unknown-model", 1000, 1000) == 0.0


def test_query_complexity_accepts_camel_case() -> None:
    qc = QueryComplexity.model_validate({
        "complexity": "moderate",
        "category": "benefits",
        "estimatedTokens": 300,
        "requiresReasoning": True,
        "requiresContext": True,
        "confidence": 0.7,
    })
    assert qc.estimated_tokens == 300
    assert qc.requires_reasoning is True


def test_llm_classifier_falls_back_on_failure(monkeypatch) -> None:
    async def broken(self, messages, temperature=0.0, max_tokens=300):
        raise ValueError("model returned invalid JSON")

    monkeypatch.setattr("services.llm_service.LLMService.chat_json", broken)
    result = asyncio.run(HybridLLMRouter().analyze_query_complexity("anything"))
    assert result == FALLBACK_COMPLEXITY


def test_classifier_setting(monkeypatch) -> None:
    calls = []

    async def fake_llm(self, query, context=None):
        calls.append(query)
        return _complexity("complex", category="analysis")

    monkeypatch.setattr(HybridLLMRouter, "analyze_query_complexity", fake_llm)
    router = HybridLLMRouter(rng=lambda: 0.0)

    monkeypatch.delenv("LLM_ROUTER_CLASSIFIER", raising=False)
    assert asyncio.run(router.classify("What is the dental deductible?")).complexity == "simple"
    assert calls == []

    monkeypatch.setenv("LLM_ROUTER_CLASSIFIER", "llm")
    assert asyncio.run(router.classify("What is the dental deductible?")).complexity == "complex"
    assert calls == ["What is the dental deductible?"]


def test_route_query_tracks_stats(monkeypatch) -> None:
    monkeypatch.delenv("LLM_ROUTER_CLASSIFIER", raising=False)
    router = HybridLLMRouter(rng=lambda: 0.0)

    simple = asyncio.run(router.route_query("What is the dental deductible?", company_id="acme"))
    complex_ = asyncio.run(router.route_query("Please analyze and compare every plan in depth"))
    assert simple.model == SIMPLE_MODEL_ID
    assert complex_.model == COMPLEX_MODEL_ID
    assert complex_.config.id == COMPLEX_MODEL_ID

    router.record_response(SIMPLE_MODEL_ID, 1000, cost=0.001, baseline_cost=0.02)
    router.record_response(COMPLEX_MODEL_ID, 3000, cost=0.05, baseline_cost=0.05)

    stats = router.get_stats()
    assert stats["total_queries"] == 2
    assert {d["model"]: d["percentage"] for d in stats["model_distribution"]} == {
        SIMPLE_MODEL_ID: 50.0,
        COMPLEX_MODEL_ID: 50.0,
    }
    assert stats["average_response_time"] == pytest.approx(2000)
    assert stats["cost_savings"] == pytest.approx(0.019)

    router.reset_stats()
    assert router.get_stats() == {
        "total_queries": 0,
        "model_distribution": [],
        "cost_savings": 0.0,
        "average_response_time": 0.0,
    }


def test_baseline_cost_uses_most_expensive_model() -> None:
    router = HybridLLMRouter()
    assert router.baseline_cost(1000, 1000) == pytest.approx(estimate_cost(COMPLEX_MODEL_ID, 1000, 1000))


def test_routing_report() -> None:
    router = HybridLLMRouter()
    empty = build_routing_report(router)
    assert empty["recommendations"]["cost_analysis"] == "Cost analysis pending"
    assert empty["recommendations"]["optimize_for_cost"] == "Current routing is optimal"
    assert empty["models"][SIMPLE_MODEL_ID]["usage"] == 0
    assert empty["models"][COMPLEX_MODEL_ID]["cost_per_1m"] == 40.0

    router._stats.total_queries = 2000
    router._stats.model_usage = {SIMPLE_MODEL_ID: 2000}
    router._stats.average_response_time = 2500
    busy = build_routing_report(router)
    assert busy["routing"]["estimated_savings"] == pytest.approx(50.0)
    assert busy["models"][SIMPLE_MODEL_ID]["usage"] == 2000
    assert busy["recommendations"]["optimize_for_cost"].startswith("Consider routing more traffic")
    assert busy["recommendations"]["optimize_for_performance"] == "Consider adding more fast models"
    assert busy["recommendations"]["cost_analysis"] == f"Estimated $50.0 cost savings vs {COMPLEX_MODEL_ID} only"


def test_cost_comparison_in_report() -> None:
    router = HybridLLMRouter()
    assert "cost_comparison" not in build_routing_report(router)
    rows = {r["model"]: r for r in build_routing_report(router, 500_000)["cost_comparison"]}
    assert rows[SIMPLE_MODEL_ID]["estimated_cost"] == pytest.approx(1.0)
    assert rows[COMPLEX_MODEL_ID]["estimated_cost"] == pytest.approx(20.0)
    assert rows[COMPLEX_MODEL_ID]["cost_per_1m"] == 40.0


def test_high_priority_routes_to_complex_model(monkeypatch) -> None:
    monkeypatch.delenv("LLM_ROUTER_CLASSIFIER", raising=False)
    router = HybridLLMRouter(rng=lambda: 0.0)
    assert router.select_model(_complexity("simple", category="faq"), priority="high") == (
        COMPLEX_MODEL_ID,
        "High priority request",
    )
    assert router.select_model(_complexity("simple", category="faq"), priority="low")[0] == SIMPLE_MODEL_ID

    decision = asyncio.run(router.route_query("What is the dental deductible?", priority="high"))
    assert decision.model == COMPLEX_MODEL_ID
    assert router.get_stats()["model_distribution"] == [
        {"model": COMPLEX_MODEL_ID, "count": 1, "percentage": 100.0},
    ]


def test_module_singleton() -> None:
    assert isinstance(router_module.llm_router, HybridLLMRouter)
