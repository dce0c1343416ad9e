"""LLM configuration for the decision oracle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from market_simulator.config.schemas import OracleConfig


@dataclass(frozen=True)
class LLMConfig:
    """Immutable oracle model settings.

    The model string uses the format "provider:model_name", e.g.
    "anthropic:claude-sonnet-4-5" or "openai:gpt-4o".

    Example:
        >>> config = LLMConfig(model="openai:gpt-4o")
        >>> config.provider
        'openai'
        >>> config.model_name
        'gpt-4o'
    """

    model: str
    temperature: float = 0.7
    max_tokens: int = 1000
    timeout_seconds: int = 60

    @property
    def provider(self) -> str:
        return self.model.split(":")[0]

    @property
    def model_name(self) -> str:
        return self.model.split(":", 1)[1]

    @property
    def full_model_string(self) -> str:
        """Model string in the form PydanticAI expects (google -> google-gla)."""
        if self.provider == "google":
            return f"google-gla:{self.model_name}"
        return self.model

    def to_model_settings(self) -> dict[str, Any]:
        """Convert to a PydanticAI ModelSettings dict."""
        return {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout_seconds,
        }

    @classmethod
    def from_oracle_config(cls, oracle: OracleConfig) -> LLMConfig:
        return cls(
            model=oracle.model,
            temperature=oracle.temperature,
            max_tokens=oracle.max_tokens,
            timeout_seconds=oracle.timeout_seconds,
        )
