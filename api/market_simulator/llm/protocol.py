"""LLM client protocol.

Any object with a matching ``generate_structured_output`` coroutine can
back an oracle agent; implementations need not inherit from this class.
"""

from __future__ import annotations

from typing import Protocol, TypeVar, runtime_checkable

from market_simulator.llm.result import LLMResult

T = TypeVar("T")


@runtime_checkable
class LLMClientProtocol(Protocol):
    """Structural interface for LLM clients."""

    async def generate_structured_output(
        self,
        prompt: str,
        response_model: type[T],
        system_prompt: str | None = None,
    ) -> LLMResult[T]:
        """Generate output parsed into ``response_model``.

        Raises:
            RateLimitedError: If the provider throttled the request.
        """
        ...
