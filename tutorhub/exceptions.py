"""Exception hierarchy for TutorHub."""

from __future__ import annotations

from typing import Any


class TutorHubError(Exception):
    """Base exception for all TutorHub errors."""


class StorageError(TutorHubError):
    """Raised when storage operations fail."""


class DeliveryError(TutorHubError):
    """Raised when an out-of-band message cannot be delivered."""


class ApiError(TutorHubError):
    """Error that maps to a transport-level response.

    Raised by the tenant resolver, the RBAC gate and route handlers; a single
    exception handler turns it into the standard error envelope.
    """

    code = "InternalError"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class ValidationError(ApiError):
    code = "ValidationError"
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(ApiError):
    code = "Unauthorized"
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ApiError):
    code = "Forbidden"
    status_code = 403
    default_message = "Forbidden"


class NotFound(ApiError):
    code = "NotFound"
    status_code = 404
    default_message = "Not found"


class Conflict(ApiError):
    code = "Conflict"
    status_code = 409
    default_message = "Conflict"


class InternalError(ApiError):
    """Unexpected failure; the message is always generic."""
