"""
Error taxonomy for the sales intelligence engine.

Every failure that crosses a module boundary is an IntelError carrying an
ErrorKind. The API layer maps kinds to HTTP status codes and user copy; the
best-effort helpers (research, social, competitors) catch them per call and
degrade to empty sections instead.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    CONFIG_MISSING = "config_missing"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    RATE_LIMITED = "rate_limited"
    PARSE_FAILURE = "parse_failure"
    NOT_FOUND = "not_found"
    STAGE_BLOCKED = "stage_blocked"
    INVALID_INPUT = "invalid_input"
    CANCELLED = "cancelled"


class IntelError(Exception):
    """Base error with a kind, a message, and optional provider detail."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}
        if kind is not None:
            self.kind = kind

    def to_dict(self) -> Dict[str, Any]:
        out = {"kind": self.kind.value, "message": self.message}
        if self.detail:
            out["detail"] = self.detail
        return out


class ConfigMissingError(IntelError):
    kind = ErrorKind.CONFIG_MISSING


class UpstreamError(IntelError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class RateLimitedError(IntelError):
    kind = ErrorKind.RATE_LIMITED


class ParseFailureError(IntelError):
    kind = ErrorKind.PARSE_FAILURE


class NotFoundError(IntelError):
    kind = ErrorKind.NOT_FOUND


class StageBlockedError(IntelError):
    kind = ErrorKind.STAGE_BLOCKED


class InvalidInputError(IntelError):
    kind = ErrorKind.INVALID_INPUT


class CancelledError(IntelError):
    kind = ErrorKind.CANCELLED


# =============================================================================
# API BOUNDARY MAPPING
# =============================================================================

HTTP_STATUS = {
    ErrorKind.CONFIG_MISSING: 400,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.STAGE_BLOCKED: 409,
    ErrorKind.PARSE_FAILURE: 502,
    ErrorKind.UPSTREAM_UNAVAILABLE: 502,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.CANCELLED: 499,
}

USER_COPY = {
    ErrorKind.CONFIG_MISSING: "A required API key is not configured. Add it in Settings.",
    ErrorKind.UPSTREAM_UNAVAILABLE: "An external data provider could not be reached. Try again shortly.",
    ErrorKind.RATE_LIMITED: "An external provider is rate limiting requests. Try again in a minute.",
    ErrorKind.PARSE_FAILURE: "The AI response could not be understood. Try running the stage again.",
    ErrorKind.NOT_FOUND: "The requested record was not found.",
    ErrorKind.STAGE_BLOCKED: "Complete the previous stage first.",
    ErrorKind.INVALID_INPUT: "The request is missing required information.",
    ErrorKind.CANCELLED: "The operation was cancelled.",
}


def http_status(kind: ErrorKind) -> int:
    return HTTP_STATUS.get(kind, 500)


def user_message(err: IntelError) -> str:
    """User-facing copy; specific messages win for blocked/invalid/config errors."""
    if err.kind in (ErrorKind.STAGE_BLOCKED, ErrorKind.INVALID_INPUT, ErrorKind.CONFIG_MISSING, ErrorKind.NOT_FOUND):
        return err.message or USER_COPY[err.kind]
    return USER_COPY.get(err.kind, err.message)
