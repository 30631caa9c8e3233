"""Domain exceptions mapped to HTTP responses.

Every error a service raises on purpose is an ``ApiError``. The exception
handlers in ``account_service.api.error_handling`` are the only place these are
turned into responses.
"""

from typing import Any, List, Optional


class ApiError(Exception):
    """Base class for errors that carry an HTTP status and a client-safe message."""

    status_code: int = 500
    error_code: str = "internal_error"
    default_message: str = "Something went wrong"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        errors: Optional[List[Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors or []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code}, message={self.message!r})"


class ValidationError(ApiError):
    """Missing or malformed input (400)."""

    status_code = 400
    error_code = "validation_error"
    default_message = "Invalid request"


class UnauthorizedError(ApiError):
    """Bad credentials or a missing, invalid, expired or revoked token (401)."""

    status_code = 401
    error_code = "unauthorized"
    default_message = "Unauthorized request"


class NotFoundError(ApiError):
    """No matching identity or resource (404)."""

    status_code = 404
    error_code = "not_found"
    default_message = "Not found"


class ConflictError(ApiError):
    """Duplicate username or email (409)."""

    status_code = 409
    error_code = "conflict"
    default_message = "Resource already exists"


class InternalError(ApiError):
    """Unexpected store failure or a failed post-write read-back (500)."""

    status_code = 500
    error_code = "internal_error"


class UpstreamError(ApiError):
    """A collaborator such as the media store failed (502)."""

    status_code = 502
    error_code = "upstream_error"
    default_message = "Upstream service failed"
