"""
Error taxonomy.

Every failure a component can report is one of these exceptions. They are
translated into HTTP responses exactly once, in ``gatehouse.api.errors``.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FieldViolation:
    """A single field-scoped validation failure."""
    field: str
    message: str
    rejected_value: Any = None


class GatehouseError(Exception):
    """Base class for all expected, typed failures."""

    status_code: int = 400
    error: str = "Bad Request"
    default_message: str = "Invalid request"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(GatehouseError):
    """One or more fields failed validation. All violations are collected."""

    default_message = "Validation failed for one or more fields"

    def __init__(self, violations: list[FieldViolation], message: str | None = None):
        super().__init__(message)
        self.violations = list(violations)


class IllegalState(GatehouseError):
    """Operation is well-formed but not allowed in the current state."""

    default_message = "Operation not allowed in the current state"


class IncorrectPassword(GatehouseError):
    default_message = "Current password is incorrect"


class InvalidCredentials(GatehouseError):
    status_code = 401
    error = "Unauthorized"
    default_message = "Invalid email or password"


class InvalidToken(GatehouseError):
    status_code = 401
    error = "Unauthorized"
    default_message = "Invalid or expired token"


class AccountDisabled(GatehouseError):
    status_code = 403
    error = "Forbidden"
    default_message = "Your account has been disabled. Please contact support."


class AuthorizationDenied(GatehouseError):
    status_code = 403
    error = "Forbidden"
    default_message = "You do not have permission to access this resource"


class UserNotFound(GatehouseError):
    status_code = 404
    error = "Not Found"
    default_message = "User not found"


class DuplicateIdentity(GatehouseError):
    status_code = 409
    error = "Conflict"
    default_message = "A user with this email or username already exists"
