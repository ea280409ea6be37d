from __future__ import annotations

from typing import Any


class TenancyError(Exception):
    """Base error for authentication, authorization and tenancy failures.

    Every subclass maps to one HTTP status and a stable machine-readable code;
    the API layer renders them with the shared error envelope.
    """

    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str, *, code: str | None = None, details: Any = None) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details
        super().__init__(message)


class UnauthorizedError(TenancyError):
    """Missing, malformed, expired or otherwise unverifiable credential."""

    status_code = 401
    default_code = "unauthorized"


class ForbiddenError(TenancyError):
    """Authenticated but not permitted."""

    status_code = 403
    default_code = "forbidden"


class ForbiddenTenantError(ForbiddenError):
    """The principal is not a member of the requested tenant."""

    default_code = "forbidden_tenant"


class NotFoundError(TenancyError):
    status_code = 404
    default_code = "not_found"


class ConflictError(TenancyError):
    status_code = 409
    default_code = "conflict"


class InvalidArgumentError(TenancyError):
    status_code = 400
    default_code = "invalid_argument"
