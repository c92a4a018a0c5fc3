"""
Error kinds surfaced by the API.

Each error carries the HTTP status it maps to; the app installs handlers that
render them inside the standard ``{success: false, message, errors?}``
envelope.
"""

from __future__ import annotations

from typing import Optional


class ApiError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self, message: Optional[str] = None, errors: Optional[list[dict]] = None
    ):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(ApiError):
    """Malformed or missing input. ``errors`` holds ``{field, message}`` items."""

    status_code = 400
    default_message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(errors=[{"field": field, "message": message}])


class InvalidCredentials(ApiError):
    status_code = 401
    default_message = "Invalid email or password"


class InvalidToken(ApiError):
    status_code = 401
    default_message = "Invalid or expired token"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Administrator access required"


class NotFound(ApiError):
    status_code = 404
    default_message = "Resource not found"


class RateLimited(ApiError):
    status_code = 429
    default_message = "Too many requests from this IP, please try again later."

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message)


class InternalError(ApiError):
    status_code = 500
