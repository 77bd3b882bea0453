"""
errors.py — Error taxonomy for the back-office service
======================================================
Every error carries the HTTP status it maps to and renders the uniform
rejection payload ``{"error": str, "lockedUntil"?: ISO-8601}``.

The edge guard renders its own rejections with ``to_response()`` because
it runs outside FastAPI's exception handling; routes simply raise and the
handlers registered in ``main.create_app`` do the rendering.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import status
from fastapi.responses import JSONResponse


def isoformat_epoch(ts: float) -> str:
    """Render epoch seconds as a UTC ISO-8601 string with millisecond precision."""
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BackofficeError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal error."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message}

    def to_response(self) -> JSONResponse:
        return JSONResponse(self.to_payload(), status_code=self.status_code)


class RateLimited(BackofficeError):
    """Fixed rate window exceeded."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many requests. Please try again later."


class LockedOut(BackofficeError):
    """Too many failed logins; carries the lock expiry so clients can back off."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many login attempts. Please try again later."

    def __init__(self, locked_until: float, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.locked_until = locked_until

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "lockedUntil": isoformat_epoch(self.locked_until)}


class CsrfRejected(BackofficeError):
    # Same message whether the cookie or the header side was missing.
    status_code = status.HTTP_403_FORBIDDEN
    message = "Invalid CSRF token"


class NotFound(BackofficeError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Record not found."


class InvalidQuery(BackofficeError):
    """Unknown filter, sort column or update field for a collection."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid query."


class UpstreamFailure(BackofficeError):
    """The data store failed; rendered for SQLAlchemy errors reaching the app."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Upstream data store failure."
