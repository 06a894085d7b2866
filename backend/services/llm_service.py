"""
LLM service layer
Thin wrapper over an OpenAI-compatible chat completions API, with usage reporting.
"""
import json
from typing import AsyncGenerator, List, Optional

from openai import AsyncOpenAI

from config import DEFAULT_API_BASE, ModelConfig, get_default_max_tokens
from models import Message


def estimate_tokens(text: str) -> int:
    """About 4 characters per token."""
    return (len(text or "") + 3) // 4


def estimate_usage(messages: List[Message], completion: str) -> dict:
    prompt = sum(estimate_tokens(m.content) for m in messages)
    completion_tokens = estimate_tokens(completion)
    return {
        "prompt_tokens": prompt,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt + completion_tokens,
        "estimated": True,
    }


def _usage_to_dict(usage) -> Optional[dict]:
    if usage is None:
        return None
    return {
        "prompt_tokens": usage.prompt_tokens,
        "completion_tokens": usage.completion_tokens,
        "total_tokens": usage.total_tokens,
    }


class LLMService:
    """Chat client for one configured model"""

    def __init__(self, model_config: ModelConfig):
        self.config = model_config
        self.client = self._create_client()
        # filled by chat_stream once the stream is exhausted
        self.last_usage: Optional[dict] = None
        self.finish_reason: Optional[str] = None

    def _create_client(self) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=self.config.api_key,
            base_url=self.config.api_base or DEFAULT_API_BASE,
        )

    def _completion_kwargs(self, temperature: Optional[float], max_tokens: Optional[int]) -> dict:
        return {
            "temperature": temperature if temperature is not None else self.config.temperature,
            "max_tokens": min(max_tokens or get_default_max_tokens(), self.config.max_tokens),
        }

    @staticmethod
    def _to_api_messages(messages: List[Message]) -> list[dict]:
        return [{"role": m.role.value, "content": m.content} for m in messages]

    async def chat_with_usage(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **extra,
    ) -> tuple[str, dict, Optional[str]]:
        """Non-streaming call; returns (content, usage, finish_reason)."""
        response = await self.client.chat.completions.create(
            model=self.config.model_name,
            messages=self._to_api_messages(messages),
            stream=False,
            **self._completion_kwargs(temperature, max_tokens),
            **extra,
        )
        choice = response.choices[0]
        content = choice.message.content or ""
        usage = _usage_to_dict(response.usage) or estimate_usage(messages, content)
        return content, usage, choice.finish_reason

    async def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        content, _, _ = await self.chat_with_usage(messages, temperature, max_tokens)
        return content

    async def chat_json(self, messages: List[Message], temperature: float = 0.0, max_tokens: int = 300) -> dict:
        """Ask for a JSON object reply and parse it; raises ValueError on invalid JSON."""
        content, _, _ = await self.chat_with_usage(
            messages,
            temperature,
            max_tokens,
            response_format={"type": "json_object"},
        )
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"model returned invalid JSON: {e}") from e

    async def chat_stream(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncGenerator[str, None]:
        """Streamed content deltas; last_usage and finish_reason are set at the end."""
        self.last_usage = None
        self.finish_reason = None
        response = await self.client.chat.completions.create(
            model=self.config.model_name,
            messages=self._to_api_messages(messages),
            stream=True,
            stream_options={"include_usage": True},
            **self._completion_kwargs(temperature, max_tokens),
        )
        async for chunk in response:
            if chunk.usage is not None:
                self.last_usage = _usage_to_dict(chunk.usage)
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            if choice.finish_reason:
                self.finish_reason = choice.finish_reason
            if choice.delta and choice.delta.content:
                yield choice.delta.content


def sse_event(payload: dict) -> str:
    """One SSE frame."""
    return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"
