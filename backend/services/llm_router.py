"""
Hybrid LLM router

Estimates how complex a query is (keyword heuristic, or the cheap model as a classifier),
picks a model from ROUTING_RULES plus a few overrides, and keeps per-process usage stats.
"""
import logging
import os
import random
from dataclasses import dataclass, field
from typing import Callable, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field

from config import (
    COMPLEX_MODEL_ID,
    MODEL_CATALOG,
    SIMPLE_MODEL_ID,
    ModelConfig,
    get_model_config,
    get_most_expensive_model_id,
)
from models import Message, Role

logger = logging.getLogger("services.llm_router")


class QueryComplexity(BaseModel):
    complexity: Literal["simple", "moderate", "complex"]
    category: Literal["faq", "benefits", "technical", "creative", "analysis"]
    estimated_tokens: int = Field(ge=1, le=10000, validation_alias=AliasChoices("estimated_tokens", "estimatedTokens"))
    requires_reasoning: bool = Field(validation_alias=AliasChoices("requires_reasoning", "requiresReasoning"))
    requires_context: bool = Field(validation_alias=AliasChoices("requires_context", "requiresContext"))
    confidence: float = Field(ge=0.0, le=1.0)


FALLBACK_COMPLEXITY = QueryComplexity(
    complexity="simple",
    category="faq",
    estimated_tokens=100,
    requires_reasoning=False,
    requires_context=False,
    confidence=0.5,
)

ROUTING_RULES = {
    "simple": {"primary": SIMPLE_MODEL_ID, "fallback": SIMPLE_MODEL_ID, "threshold": 0.8},
    "moderate": {"primary": SIMPLE_MODEL_ID, "fallback": COMPLEX_MODEL_ID, "threshold": 0.6},
    "complex": {"primary": COMPLEX_MODEL_ID, "fallback": COMPLEX_MODEL_ID, "threshold": 0.7},
}

SIMPLE_INDICATORS = ["what is", "how much", "when", "where", "yes", "no", "quick question"]
COMPLEX_INDICATORS = [
    "analyze", "compare", "explain detailed", "breakdown", "comprehensive",
    "complex", "detailed analysis", "in-depth", "thorough review",
]
BENEFITS_KEYWORDS = ["benefits", "insurance", "401k", "pto", "healthcare", "dental", "vision"]
CATEGORY_KEYWORDS = {
    "benefits": ["benefits", "insurance", "healthcare", "dental", "vision", "401k", "retirement"],
    "pto": ["pto", "vacation", "time off", "sick leave", "holiday"],
    "hr": ["hr", "human resources", "policy", "handbook", "procedure"],
    "payroll": ["payroll", "salary", "pay", "compensation", "bonus"],
}

ANALYSIS_PROMPT = """
Analyze this user query for complexity and routing decisions:

Query: "{query}"
Context: {context}

Consider:
- Is this a simple FAQ or benefits question?
- Does it require complex reasoning or analysis?
- How much context is needed?
- Estimated token count for response

Respond with JSON matching this schema:
{{
  "complexity": "simple" | "moderate" | "complex",
  "category": "faq" | "benefits" | "technical" | "creative" | "analysis",
  "estimatedTokens": number,
  "requiresReasoning": boolean,
  "requiresContext": boolean,
  "confidence": number (0-1)
}}"""

# flat per-query estimates used by the admin savings figure
BASELINE_COST_PER_QUERY = 0.04
HYBRID_COST_PER_QUERY = 0.015


@dataclass
class RequestAnalysis:
    complexity: str
    estimated_tokens: int
    category: str
    is_benefits_query: bool
    requires_real_time: bool
    word_count: int
    priority: str = "medium"


@dataclass
class RoutingDecision:
    model: str
    config: ModelConfig
    reason: str
    complexity: QueryComplexity


def categorize(message: str) -> str:
    lower = message.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(k in lower for k in keywords):
            return category
    return "general"


def analyze_request(message: str, priority: str = "medium") -> RequestAnalysis:
    """Keyword/length heuristic; no model call."""
    lower = message.lower()
    word_count = len(message.split(" "))
    estimated = max(100.0, word_count * 1.5)
    complexity = "moderate"

    if any(i in lower for i in SIMPLE_INDICATORS) and word_count < 20:
        complexity = "simple"
        estimated = min(estimated, 500.0)
    elif any(i in lower for i in COMPLEX_INDICATORS) or word_count > 50:
        complexity = "complex"
        estimated = max(estimated, 1000.0)

    return RequestAnalysis(
        complexity=complexity,
        estimated_tokens=int(estimated),
        category=categorize(lower),
        is_benefits_query=any(k in lower for k in BENEFITS_KEYWORDS),
        requires_real_time="current" in lower or "today" in lower,
        word_count=word_count,
        priority=priority,
    )


def heuristic_complexity(analysis: RequestAnalysis) -> QueryComplexity:
    if analysis.complexity == "complex":
        category = "analysis"
    elif analysis.category in ("benefits", "pto", "hr", "payroll"):
        category = "benefits"
    else:
        category = "faq"
    return QueryComplexity(
        complexity=analysis.complexity,
        category=category,
        estimated_tokens=min(max(analysis.estimated_tokens, 1), 10000),
        requires_reasoning=analysis.complexity == "complex",
        requires_context=analysis.is_benefits_query,
        confidence=0.6,
    )


def calculate_confidence(content: str, finish_reason: Optional[str]) -> float:
    confidence = 0.8
    if finish_reason == "stop":
        confidence += 0.1
    if len(content) > 50:
        confidence += 0.05
    if "I don't know" not in content and "uncertain" not in content:
        confidence += 0.05
    return min(round(confidence, 4), 1.0)


def estimate_cost(model_id: str, prompt_tokens: int, completion_tokens: int) -> float:
    entry = MODEL_CATALOG.get(model_id)
    if not entry:
        return 0.0
    return (
        prompt_tokens / 1_000_000 * entry["cost_per_1m_input"]
        + completion_tokens / 1_000_000 * entry["cost_per_1m_output"]
    )


def get_classifier() -> str:
    value = os.getenv("LLM_ROUTER_CLASSIFIER", "heuristic").strip().lower()
    return "llm" if value == "llm" else "heuristic"


@dataclass
class _UsageStats:
    total_queries: int = 0
    model_usage: dict = field(default_factory=dict)
    cost_savings: float = 0.0
    average_response_time: float = 0.0
    responses: int = 0


class HybridLLMRouter:

    def __init__(self, rng: Callable[[], float] = random.random):
        self.rng = rng
        self._stats = _UsageStats()

    async def analyze_query_complexity(self, query: str, context: Optional[str] = None) -> QueryComplexity:
        """Ask the cheap model to classify the query; FALLBACK_COMPLEXITY on any failure."""
        from services.llm_service import LLMService

        prompt = ANALYSIS_PROMPT.format(
            query=query,
            context=f'"{context[:500]}..."' if context else "None",
        )
        try:
            llm = LLMService(get_model_config(SIMPLE_MODEL_ID))
            raw = await llm.chat_json([Message(role=Role.USER, content=prompt)])
            return QueryComplexity.model_validate(raw)
        except Exception as e:
            logger.error(f"[Router] complexity analysis failed: {e}")
            return FALLBACK_COMPLEXITY.model_copy()

    async def classify(self, query: str, context: Optional[str] = None, priority: str = "medium") -> QueryComplexity:
        if get_classifier() == "llm":
            return await self.analyze_query_complexity(query, context)
        return heuristic_complexity(analyze_request(query, priority))

    def select_model(
        self,
        complexity: QueryComplexity,
        rng: Optional[Callable[[], float]] = None,
        priority: str = "medium",
    ) -> tuple[str, str]:
        """(model id, reason) from ROUTING_RULES and the override cases. High priority goes to the complex model."""
        level = complexity.complexity
        rules = ROUTING_RULES[level]
        draw = (rng or self.rng)()
        selected = rules["primary"] if draw < rules["threshold"] else rules["fallback"]

        if priority == "high":
            return COMPLEX_MODEL_ID, "High priority request"
        if complexity.category == "technical" and complexity.requires_reasoning:
            return COMPLEX_MODEL_ID, "Technical query requiring reasoning"
        if complexity.estimated_tokens > 5000:
            return COMPLEX_MODEL_ID, "Large response expected"
        if complexity.category == "faq" and level == "simple":
            return SIMPLE_MODEL_ID, "Simple FAQ query"
        return selected, f"{level} complexity query routed to {selected}"

    async def route_query(
        self,
        query: str,
        context: Optional[str] = None,
        company_id: Optional[str] = None,
        priority: str = "medium",
    ) -> RoutingDecision:
        complexity = await self.classify(query, context, priority)
        model, reason = self.select_model(complexity, priority=priority)
        self._stats.total_queries += 1
        self._stats.model_usage[model] = self._stats.model_usage.get(model, 0) + 1
        logger.info(f"[Router] company={company_id} {complexity.complexity}/{complexity.category} -> {model} ({reason})")
        return RoutingDecision(
            model=model,
            config=get_model_config(model),
            reason=reason,
            complexity=complexity,
        )

    def record_response(
        self,
        model: str,
        response_time_ms: float,
        cost: float,
        baseline_cost: Optional[float] = None,
    ) -> None:
        """Fold one finished reply into the running averages and savings."""
        s = self._stats
        s.responses += 1
        s.average_response_time += (response_time_ms - s.average_response_time) / s.responses
        if baseline_cost is not None:
            s.cost_savings += max(0.0, baseline_cost - cost)

    def baseline_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Cost of the same tokens on the most expensive model."""
        return estimate_cost(get_most_expensive_model_id(), prompt_tokens, completion_tokens)

    def get_stats(self) -> dict:
        total = self._stats.total_queries
        distribution = [
            {
                "model": model,
                "count": count,
                "percentage": (count / total) * 100 if total > 0 else 0,
            }
            for model, count in self._stats.model_usage.items()
        ]
        return {
            "total_queries": total,
            "model_distribution": distribution,
            "cost_savings": self._stats.cost_savings,
            "average_response_time": self._stats.average_response_time,
        }

    def reset_stats(self) -> None:
        self._stats = _UsageStats()

    def get_cost_comparison(self, estimated_tokens: int) -> list[dict]:
        out = []
        for model_id, entry in MODEL_CATALOG.items():
            per_1m = entry["cost_per_1m_input"] + entry["cost_per_1m_output"]
            out.append({
                "model": model_id,
                "estimated_cost": estimated_tokens / 1_000_000 * per_1m,
                "cost_per_1m": per_1m,
            })
        return out


def estimated_savings(total_queries: int) -> float:
    return max(0.0, total_queries * (BASELINE_COST_PER_QUERY - HYBRID_COST_PER_QUERY))


def build_recommendations(stats: dict) -> dict:
    total = stats["total_queries"]
    savings = estimated_savings(total)
    return {
        "optimize_for_cost": (
            f"Consider routing more traffic to {SIMPLE_MODEL_ID}" if total > 1000 else "Current routing is optimal"
        ),
        "optimize_for_performance": (
            "Consider adding more fast models" if stats["average_response_time"] > 2000 else "Performance is good"
        ),
        "cost_analysis": (
            f"Estimated ${round(savings, 2)} cost savings vs {COMPLEX_MODEL_ID} only"
            if total > 0 else "Cost analysis pending"
        ),
    }


def build_routing_report(router: "HybridLLMRouter", estimated_tokens: Optional[int] = None) -> dict:
    """Admin view: stats, catalog with usage, savings estimate and recommendations.
    With estimated_tokens, also the per-model price of that many tokens."""
    stats = router.get_stats()
    usage = {d["model"]: d["count"] for d in stats["model_distribution"]}
    models = {
        model_id: {
            "name": entry["name"],
            "cost_per_1m": entry["cost_per_1m_input"] + entry["cost_per_1m_output"],
            "capabilities": list(entry["capabilities"]),
            "usage": usage.get(model_id, 0),
        }
        for model_id, entry in MODEL_CATALOG.items()
    }
    report = {
        "routing": {**stats, "estimated_savings": estimated_savings(stats["total_queries"])},
        "models": models,
        "recommendations": build_recommendations(stats),
    }
    if estimated_tokens:
        report["cost_comparison"] = router.get_cost_comparison(estimated_tokens)
    return report


llm_router = HybridLLMRouter()
