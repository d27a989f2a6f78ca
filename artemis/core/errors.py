"""Error taxonomy for orchestration turns.

Turn-level failures are surfaced to the client as a single ``error`` event
carrying a stable ``code``. Codes are part of the wire contract: the client
maps them to specific, actionable messages and never auto-retries capacity
errors.
"""

from enum import Enum

import httpx
import openai


class ErrorCode(str, Enum):
    """Stable error codes carried by the ``error`` stream event."""

    OPERATION_FAILED = "operation_failed"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    INVALID_API_KEY = "invalid_api_key"
    UNKNOWN_ERROR = "unknown_error"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.OPERATION_FAILED: "The assistant produced an invalid response. Please rephrase and try again.",
    ErrorCode.RATE_LIMITED: "Rate limit exceeded. Please wait a moment and try again.",
    ErrorCode.UPSTREAM_UNAVAILABLE: "The AI service is temporarily unavailable. Please try again later.",
    ErrorCode.INVALID_API_KEY: "The AI service rejected our credentials. Please contact support.",
    ErrorCode.UNKNOWN_ERROR: "Failed to get AI response. Please try again.",
}


class OrchestrationError(Exception):
    """Base class for errors that end a turn."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str | None = None, code: ErrorCode | None = None):
        if code is not None:
            self.code = code
        self.message = message or ERROR_MESSAGES[self.code]
        super().__init__(self.message)


class DecisionValidationError(OrchestrationError):
    """The reasoning engine's output did not validate against the decision schema.

    Treated as a generation error: the stream still completes with ``done``.
    """

    code = ErrorCode.OPERATION_FAILED

    def __init__(self, message: str | None = None, details: list | None = None):
        super().__init__(message)
        self.details = details or []


class UpstreamError(OrchestrationError):
    """Capacity or availability failure of an upstream AI provider."""

    code = ErrorCode.UPSTREAM_UNAVAILABLE


class TurnInProgressError(Exception):
    """A turn was started while another is still streaming on the same client."""


class TransportError(Exception):
    """Network failure or non-2xx response while streaming a turn."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def classify_upstream_error(exc: BaseException) -> OrchestrationError:
    """
    Map an SDK/transport exception onto the turn error taxonomy.

    Args:
        exc: Exception raised by the OpenAI SDK, httpx, or our own code

    Returns:
        OrchestrationError with the matching code (UNKNOWN_ERROR if unrecognized)
    """
    if isinstance(exc, OrchestrationError):
        return exc

    if isinstance(exc, openai.RateLimitError):
        return UpstreamError(code=ErrorCode.RATE_LIMITED)
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return UpstreamError(code=ErrorCode.INVALID_API_KEY)
    if isinstance(exc, (openai.APIConnectionError, openai.InternalServerError)):
        return UpstreamError(code=ErrorCode.UPSTREAM_UNAVAILABLE)
    if isinstance(exc, openai.APIStatusError) and exc.status_code >= 500:
        return UpstreamError(code=ErrorCode.UPSTREAM_UNAVAILABLE)

    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code == 429:
            return UpstreamError(code=ErrorCode.RATE_LIMITED)
        if exc.response.status_code >= 500:
            return UpstreamError(code=ErrorCode.UPSTREAM_UNAVAILABLE)
    if isinstance(exc, httpx.TransportError):
        return UpstreamError(code=ErrorCode.UPSTREAM_UNAVAILABLE)

    return OrchestrationError(code=ErrorCode.UNKNOWN_ERROR)
