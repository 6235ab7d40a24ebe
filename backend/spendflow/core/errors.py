"""Domain error taxonomy.

Every error carries the HTTP status it maps to; ``spendflow.main`` installs a
single handler that renders them as ``{"detail": ..., "error": <code>}``.
"""
from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


class Unauthenticated(AppError):
    """Could not validate credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"


class Forbidden(AppError):
    """Not permitted for this action."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class CrossTenantAccess(Forbidden):
    """Resource belongs to another company."""


class NotFound(AppError):
    """Resource not found."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InvalidState(AppError):
    """Operation is not allowed in the current lifecycle state."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_state"


class Conflict(AppError):
    """Resource was modified concurrently; re-fetch and retry."""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class ValidationError(AppError):
    """Malformed input."""

    status_code = 422
    code = "validation_error"


class UnsupportedCurrency(ValidationError):
    """Currency is not supported."""


class UpstreamUnavailable(AppError):
    """An external collaborator failed."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "upstream_unavailable"
