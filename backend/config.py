"""
Configuration management.
Model catalog for the hybrid LLM router, resolved from environment variables.
"""
import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ModelConfig(BaseModel):
    """Configuration of a single routable model"""
    id: str
    name: str
    provider: str = "openai"
    model_name: str  # actual model name sent to the API
    api_key: str = ""
    api_base: Optional[str] = None
    max_tokens: int = 4096
    temperature: float = 0.7
    cost_per_1m_input: float = 0.0
    cost_per_1m_output: float = 0.0
    capabilities: list[str] = Field(default_factory=list)

    # allow model_id / model_name style field names
    model_config = ConfigDict(protected_namespaces=())


SIMPLE_MODEL_ID = "gpt-4o-mini"
COMPLEX_MODEL_ID = "gpt-4o"

DEFAULT_API_BASE = "https://api.openai.com/v1"

# Prices are USD per 1M tokens; max_tokens is the model context size.
MODEL_CATALOG = {
    SIMPLE_MODEL_ID: {
        "name": "GPT-4o Mini",
        "env_model": "LLM_SIMPLE_MODEL",
        "max_tokens": 16385,
        "cost_per_1m_input": 0.5,
        "cost_per_1m_output": 1.5,
        "capabilities": ["simple_qa", "basic_chat", "faq"],
    },
    COMPLEX_MODEL_ID: {
        "name": "GPT-4o",
        "env_model": "LLM_COMPLEX_MODEL",
        "max_tokens": 128000,
        "cost_per_1m_input": 10.0,
        "cost_per_1m_output": 30.0,
        "capabilities": ["complex_reasoning", "analysis", "creative", "technical"],
    },
}


def get_default_temperature() -> float:
    try:
        return float(os.getenv("LLM_TEMPERATURE", "0.7"))
    except ValueError:
        return 0.7


def get_default_max_tokens() -> int:
    """Completion budget per reply."""
    try:
        return int(os.getenv("LLM_MAX_TOKENS", "2048"))
    except ValueError:
        return 2048


def get_model_config(model_id: str) -> ModelConfig:
    """Build the ModelConfig for a catalog id; raises KeyError for unknown ids."""
    entry = MODEL_CATALOG[model_id]
    return ModelConfig(
        id=model_id,
        name=entry["name"],
        provider="openai",
        model_name=os.getenv(entry["env_model"]) or model_id,
        api_key=os.getenv("OPENAI_API_KEY", ""),
        api_base=os.getenv("OPENAI_API_BASE") or None,
        max_tokens=entry["max_tokens"],
        temperature=get_default_temperature(),
        cost_per_1m_input=entry["cost_per_1m_input"],
        cost_per_1m_output=entry["cost_per_1m_output"],
        capabilities=list(entry["capabilities"]),
    )


def get_cheapest_model_id() -> str:
    """Catalog id with the lowest combined input+output price."""
    return min(
        MODEL_CATALOG,
        key=lambda m: MODEL_CATALOG[m]["cost_per_1m_input"] + MODEL_CATALOG[m]["cost_per_1m_output"],
    )


def get_most_expensive_model_id() -> str:
    return max(
        MODEL_CATALOG,
        key=lambda m: MODEL_CATALOG[m]["cost_per_1m_input"] + MODEL_CATALOG[m]["cost_per_1m_output"],
    )
