"""PydanticAI-based LLM client."""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from pydantic_ai import Agent

from market_simulator.llm.config import LLMConfig
from market_simulator.llm.rate_limit import as_rate_limited, is_rate_limit_error
from market_simulator.llm.result import LLMResult

if TYPE_CHECKING:
    from pydantic import BaseModel

T = TypeVar("T", bound="BaseModel")


class PydanticAILLMClient:
    """LLM client using PydanticAI for structured output.

    Implements LLMClientProtocol. Throttling errors raised by the provider
    are re-raised as RateLimitedError so the dispatcher can back off.

    Example:
        >>> client = PydanticAILLMClient(LLMConfig(model="openai:gpt-4o"))
        >>> result = await client.generate_structured_output(prompt, TradeDecision)
        >>> result.data.wants_trade
    """

    def __init__(self, config: LLMConfig) -> None:
        self._config = config

    @property
    def config(self) -> LLMConfig:
        return self._config

    async def generate_structured_output(
        self,
        prompt: str,
        response_model: type[T],
        system_prompt: str | None = None,
    ) -> LLMResult[T]:
        """Run a one-shot PydanticAI agent and return its parsed output.

        Raises:
            RateLimitedError: If the provider throttled the request
        """
        agent: Agent[None, T] = Agent(  # type: ignore[call-overload]
            model=self._config.full_model_string,
            output_type=response_model,
            system_prompt=system_prompt or "",
            model_settings=self._config.to_model_settings(),
            defer_model_check=True,  # Dynamic model name
        )
        try:
            result = await agent.run(prompt)
        except Exception as e:
            if is_rate_limit_error(e):
                raise as_rate_limited(e) from e
            raise

        usage = result.usage()
        return LLMResult(data=result.output, total_tokens=getattr(usage, "total_tokens", None))
