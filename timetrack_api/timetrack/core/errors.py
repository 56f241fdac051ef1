"""
Service-level exception hierarchy.

Services raise these instead of HTTPException so business rules stay usable outside
of a request. The API layer maps every ServiceError onto the standard ErrorResponse
envelope using `status_code` and `error_type`.
"""

from __future__ import annotations

from typing import Any, Optional


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""

    status_code: int = 400
    error_type: str = "service_error"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class BadRequestError(ServiceError):
    status_code = 400
    error_type = "bad_request"


class UnauthorizedError(ServiceError):
    status_code = 401
    error_type = "unauthorized"


class ForbiddenError(ServiceError):
    status_code = 403
    error_type = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    error_type = "not_found"


class ConflictError(ServiceError):
    status_code = 409
    error_type = "conflict"


class UnprocessableError(ServiceError):
    """Raised when a payload is well-formed but its content is rejected (e.g. imports)."""

    status_code = 422
    error_type = "unprocessable"


class UpstreamError(ServiceError):
    """An external API (GitHub, Jira) failed or returned an unexpected payload."""

    status_code = 502
    error_type = "upstream_error"
