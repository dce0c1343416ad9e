"""LLM result wrapper."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class LLMResult(Generic[T]):
    """Parsed LLM output plus the number of tokens it consumed, when known.

    Attributes:
        data: The parsed response (typically a Pydantic model).
        total_tokens: Token usage reported by the provider, or None.
    """

    data: T
    total_tokens: int | None = None
