"""Error taxonomy for the generative-AI client.

Every failure that leaves the AI client is one of the :class:`AIServiceError`
subclasses below. Each kind carries its own user-facing sentence; only the
``retryable`` kinds are retried.
"""

import logging
from typing import Optional

import httpx
import openai

logger = logging.getLogger(__name__)


class AIServiceError(Exception):
    kind = "unknown"
    retryable = False
    status_code = 500
    user_message = "A literary echo failed. Please try again."

    def __init__(self, detail: str = "", *, cause: Optional[BaseException] = None):
        super().__init__(detail or self.user_message)
        self.detail = detail
        self.cause = cause


class MissingKeyError(AIServiceError):
    kind = "missing_key"
    status_code = 503
    user_message = "The AI librarian is offline: no valid API key is configured."


class RateLimitedError(AIServiceError):
    kind = "rate_limited"
    retryable = True
    status_code = 429
    user_message = "The library is very busy right now. Please wait a moment and try again."


class ServiceUnavailableError(AIServiceError):
    kind = "service_unavailable"
    retryable = True
    status_code = 503
    user_message = "The AI service is temporarily unavailable. Please try again shortly."


class NetworkError(AIServiceError):
    kind = "network"
    status_code = 502
    user_message = "We could not reach the AI service. Check your connection and try again."


class SafetyRejectedError(AIServiceError):
    kind = "safety_rejected"
    status_code = 422
    user_message = "That request was declined by the content safety filter. Try rephrasing it."


class ParseError(AIServiceError):
    kind = "parse_error"
    status_code = 502
    user_message = "The AI answered in an unexpected format. Please try again."


class UnknownAIError(AIServiceError):
    kind = "unknown"
    status_code = 500
    user_message = "A literary echo failed: something unexpected happened."


_SAFETY_MARKERS = ("safety", "content_policy", "content policy", "moderation", "blocked")


def _status_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def classify_error(exc: BaseException) -> AIServiceError:
    """Map an SDK, transport or HTTP failure onto the taxonomy."""
    if isinstance(exc, AIServiceError):
        return exc

    message = str(exc)
    lowered = message.lower()

    if isinstance(exc, (openai.APIConnectionError, httpx.TransportError, ConnectionError)):
        if isinstance(exc, (openai.APITimeoutError, httpx.TimeoutException)):
            return ServiceUnavailableError(message, cause=exc)
        return NetworkError(message, cause=exc)

    status = _status_of(exc)
    if status is not None:
        if status in (401, 403):
            return MissingKeyError(message, cause=exc)
        if status == 429:
            return RateLimitedError(message, cause=exc)
        if status >= 500:
            return ServiceUnavailableError(message, cause=exc)
        if status == 400 and any(marker in lowered for marker in _SAFETY_MARKERS):
            return SafetyRejectedError(message, cause=exc)

    if any(marker in lowered for marker in _SAFETY_MARKERS):
        return SafetyRejectedError(message, cause=exc)
    if "api key" in lowered or "api_key" in lowered:
        return MissingKeyError(message, cause=exc)

    logger.debug("Unclassified AI failure %s: %s", type(exc).__name__, message)
    return UnknownAIError(message, cause=exc)
