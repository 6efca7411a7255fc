"""Key service error types.

Every error maps to one HTTP status code and a stable ``code`` string.
The application exception handler renders them as the JSON envelope used by
all endpoints: ``{"success": false, "code": ..., "message": ..., ...}``.
"""

from __future__ import annotations

from typing import Any


class KeyServiceError(Exception):
    """Base error for all key service exceptions."""

    code: str = "internal_error"
    message: str = "An internal error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Render the error envelope."""
        payload: dict[str, Any] = {
            "success": False,
            "code": self.code,
            "message": self.message,
        }
        payload.update(self.details)
        if request_id:
            payload["request_id"] = request_id
        return payload


class ValidationError(KeyServiceError):
    """Missing or malformed input (400)."""

    code = "validation_error"
    message = "Validation error"
    status_code = 400


class MalformedKeyError(KeyServiceError):
    """Presented API key is empty or has the wrong prefix (400)."""

    code = "malformed_key"
    message = "Invalid API key format"
    status_code = 400


class AuthError(KeyServiceError):
    """Bad credentials or missing admin session (401)."""

    code = "unauthorized"
    message = "Unauthorized - please login first"
    status_code = 401


class KeyNotFoundError(KeyServiceError):
    """Presented API key does not exist (401)."""

    code = "key_not_found"
    message = "API key not found"
    status_code = 401


class InactiveKeyError(KeyServiceError):
    """API key is disabled or out of date (401)."""

    code = "key_inactive"
    message = "API key is no longer active"
    status_code = 401


class NotFoundError(KeyServiceError):
    """Resource not found (404)."""

    code = "not_found"
    message = "Resource not found"
    status_code = 404


class ConflictError(KeyServiceError):
    """Uniqueness violation (409)."""

    code = "conflict"
    message = "Conflict"
    status_code = 409


class LockedError(KeyServiceError):
    """Operation already in progress (423)."""

    code = "locked"
    message = "Operation already in progress"
    status_code = 423


class InternalError(KeyServiceError):
    """Store or unexpected failure (500).

    The underlying error text is exposed under ``error`` in the envelope.
    """

    code = "internal_error"
    message = "An internal error occurred"
    status_code = 500

    def __init__(self, message: str | None = None, error: str | None = None) -> None:
        # Error text may carry unencodable input (lone surrogates)
        details = (
            {"error": error.encode("utf-8", "backslashreplace").decode("utf-8")}
            if error is not None
            else None
        )
        super().__init__(message, details)


class ServiceUnavailableError(KeyServiceError):
    """A required component is not available (503)."""

    code = "service_unavailable"
    message = "Service unavailable"
    status_code = 503
