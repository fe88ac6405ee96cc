from __future__ import annotations
from typing import Literal

ErrorKind = Literal["rate_limited", "terminal", "unknown"]

RATE_LIMIT_MARKERS = ("429", "rate limit", "quota", "resource exhausted", "resource_exhausted")


class ModelCallError(Exception):
    """Failure of one call to the generative model, tagged with a kind."""
    kind: ErrorKind = "unknown"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RateLimitedError(ModelCallError):
    kind = "rate_limited"


class TerminalModelError(ModelCallError):
    kind = "terminal"


class UnknownModelError(ModelCallError):
    kind = "unknown"


class ComparisonCancelled(Exception):
    pass


def is_rate_limit_message(message: str) -> bool:
    low = (message or "").lower()
    return any(m in low for m in RATE_LIMIT_MARKERS)


def classify_error(exc: BaseException) -> ModelCallError:
    """Map any exception raised around a model call onto a ModelCallError.

    Typed errors pass through. Untyped ones fall back to matching the
    message text, so SDK errors that only say "429 Too Many Requests" or
    "Resource exhausted" are still treated as rate limits.
    """
    if isinstance(exc, ModelCallError):
        return exc
    message = str(exc) or exc.__class__.__name__
    if is_rate_limit_message(message):
        return RateLimitedError(message)
    return UnknownModelError(message)
