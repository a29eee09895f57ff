"""LLM provider configuration."""

from typing import Literal

from pydantic import BaseModel, SecretStr

REASONING_MARKERS = ("reasoning", "thinking")


class LLMConfig(BaseModel, frozen=True):
    """LLM provider settings."""

    provider: Literal["openai", "anthropic"]
    openai_api_key: SecretStr
    openai_model: str
    openai_reasoning_model: str
    anthropic_api_key: SecretStr
    anthropic_model: str
    default_chat_model: str
    reasoning_budget_tokens: int
    max_tool_steps: int
    smooth_stream_delay_ms: int
    title_wait_seconds: float

    @staticmethod
    def is_reasoning_model(model_id: str) -> bool:
        """Check whether a chat model id denotes a reasoning variant."""
        return any(marker in model_id for marker in REASONING_MARKERS)
