"""Error taxonomy for provider calls.

Every error carries a stable machine-readable ``code`` and a ``user_message``
that is safe to show. Raw provider text only ever goes into ``context``.
"""

from __future__ import annotations

import builtins
from typing import Any, Dict, Optional


class LLMError(Exception):
    code = "INTERNAL_ERROR"
    user_message = "An unexpected error occurred. Please try again."
    http_status = 500
    retryable = True

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.context = context or {}


class LLMTimeoutError(LLMError, builtins.TimeoutError):
    code = "LLM_TIMEOUT"
    user_message = "Request timed out. Please try again."
    http_status = 504

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"LLM request timed out after {timeout_ms}ms", {"timeout_ms": timeout_ms})
        self.timeout_ms = timeout_ms


class RateLimitError(LLMError):
    code = "LLM_RATE_LIMITED"
    user_message = "Service is busy. Please try again in a moment."
    http_status = 429
    retryable = False

    def __init__(self, retry_after: Optional[int] = None) -> None:
        super().__init__("LLM rate limit exceeded", {"retry_after": retry_after})
        self.retry_after = retry_after


class AuthError(LLMError):
    user_message = "Service configuration error. Please contact support."
    retryable = False

    def __init__(self) -> None:
        super().__init__("Invalid LLM API key")


class ParsingError(LLMError):
    user_message = "Failed to process response. Please try again."

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(f"Failed to parse LLM response: {message}", context)


class ProviderError(LLMError):
    user_message = "Service error. Please try again."

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context)
        self.status_code = status_code
