"""Error taxonomy shared by the transport, the controllers and the front ends.

Cancellation is deliberately not a :class:`FetchError`: a superseded request
is dropped silently and never reaches ``last_error``.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

GENERIC_NETWORK_MESSAGE = "Network error, please try again"


class ItamError(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ItamError):
    """Client-side check failed before any request was sent."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class FetchError(ItamError):
    """A remote call failed (backend answer or transport problem)."""


class BackendError(FetchError):
    """Backend answered with a non-2xx status."""

    def __init__(self, message: str, status: int, body: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status = status
        self.body = body or {}

    @classmethod
    def from_response(cls, status: int, body: Any) -> "BackendError":
        """Build an error from a decoded response body.

        Uses the structured ``message`` field when present, otherwise a
        status-based fallback.
        """
        message = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
        if not message:
            message = f"Request failed (HTTP {status})"
        error_cls = AuthenticationError if status == 401 else cls
        return error_cls(str(message), status, body if isinstance(body, dict) else None)


class AuthenticationError(BackendError):
    """Bearer token missing, expired or rejected (HTTP 401)."""


class TransportError(FetchError):
    """The request never completed (DNS, refused connection, timeout...)."""

    def __init__(self, message: str = GENERIC_NETWORK_MESSAGE):
        super().__init__(message or GENERIC_NETWORK_MESSAGE)


class RateLimited(TransportError):
    """HTTP 429; retried after the advertised delay."""


class RequestCancelled(ItamError):
    """The request was aborted because a newer one superseded it."""

    def __init__(self, message: str = "Request cancelled"):
        super().__init__(message)


__all__ = [
    "GENERIC_NETWORK_MESSAGE",
    "ItamError",
    "ValidationError",
    "FetchError",
    "BackendError",
    "AuthenticationError",
    "TransportError",
    "RateLimited",
    "RequestCancelled",
]
