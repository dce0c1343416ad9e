"""LLM client layer backing the decision oracle."""

from .config import LLMConfig
from .protocol import LLMClientProtocol
from .rate_limit import is_rate_limit_error
from .result import LLMResult

__all__ = ["LLMClientProtocol", "LLMConfig", "LLMResult", "is_rate_limit_error"]
