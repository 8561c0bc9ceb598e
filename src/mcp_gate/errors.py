"""
Error taxonomy for mcp-gate.

Noisy provider and transport tracebacks are translated into a small set of
`GateError` subclasses, while preserving the original exception for full
tracebacks.
"""

from __future__ import annotations

import logging
from typing import Final, Optional, Type

from anthropic import APIConnectionError as AnthropicAPIConnectionError
from anthropic import APIError as AnthropicAPIError
from anthropic import RateLimitError as AnthropicRateLimitError
from openai import APIConnectionError as OpenAIAPIConnectionError
from openai import APIError as OpenAIAPIError
from openai import RateLimitError as OpenAIRateLimitError

__all__ = [
    "GateError",
    "RequestValidationError",
    "ToolConnectionError",
    "CompletionError",
    "classify_error",
]


class GateError(RuntimeError):
    """Public gate‐level exception.

    Attributes:
        original_exc: The underlying exception, if any.
    """

    original_exc: Optional[BaseException]

    def __init__(self, message: str, original_exc: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.original_exc = original_exc
        if original_exc is not None:
            self.__cause__ = original_exc


class RequestValidationError(GateError):
    """Raised when a request is missing required fields or is malformed."""
    pass


class ToolConnectionError(GateError):
    """Raised when the tool server cannot be spawned, handshaken or reached."""
    pass


class CompletionError(GateError):
    """Raised when the completion service request fails."""
    pass


API_ERRORS: Final[tuple[Type[Exception], ...]] = (
    OpenAIAPIError,
    AnthropicAPIError,
)

CONN_ERRORS: Final[tuple[Type[Exception], ...]] = (
    OpenAIAPIConnectionError,
    AnthropicAPIConnectionError,
    TimeoutError,
    ConnectionError,
)

RATE_LIMIT_ERRORS: Final[tuple[Type[Exception], ...]] = (
    OpenAIRateLimitError,
    AnthropicRateLimitError,
)


def classify_error(
    exc: Exception,
    logger: Optional[logging.Logger] = None,
) -> str:
    """
    Classifies a completion-service exception and returns a concise message.

    Args:
        exc: The caught exception
        logger: Logger for recording the error

    Returns:
        Formatted error message string
    """
    log = logger or logging.getLogger("mcp_gate.errors")

    # Rate limits and connection errors subclass APIError, so check them first
    if isinstance(exc, RATE_LIMIT_ERRORS):
        msg = f"Rate limit exceeded: {exc}"
    elif isinstance(exc, CONN_ERRORS):
        msg = f"Connection error: unable to reach the completion service: {exc}"
    elif isinstance(exc, API_ERRORS):
        status_info = getattr(exc, "status_code", "unknown")
        msg = f"API error ({status_info}): {exc}"
    else:
        msg = f"{type(exc).__name__}: {exc}"
        log.exception(msg)  # stack trace for unknown errors
        return msg

    log.error(msg)
    return msg
