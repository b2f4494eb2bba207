"""
auth/errors.py -- Expected domain failures.

Every failure a caller can cause with bad input or a wrong credential is a
DomainError subclass. Each carries a stable machine-readable code, a user-safe
message, and the HTTP status the API layer should answer with, so api/main.py
maps them in one exception handler.

Anything that is NOT a DomainError (database down, SMTP library bug, ...) is an
unexpected fault. Those propagate untouched to the generic 500 handler, which
logs them with full context and hides the detail from the client.

Layer rule: stdlib only. No fastapi imports -- status codes are plain ints.
OTPFailure is imported for annotations only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.challenges import OTPFailure


class DomainError(Exception):
    """Base class for expected, user-safe failures."""

    code = "domain_error"
    status_code = 400
    message = "Request could not be completed."

    def __init__(self, message: str | None = None, errors: list[str] | None = None) -> None:
        self.message = message or self.message
        self.errors = errors or []
        super().__init__(self.message)


class ValidationFailedError(DomainError):
    code = "validation_failed"
    message = "Validation failed"


class DuplicateEmailError(DomainError):
    code = "email_taken"
    message = "User with this email already exists"


class UnknownRoleError(DomainError):
    code = "unknown_role"
    message = "Unknown role"

    def __init__(self, role_name: str) -> None:
        self.role_name = role_name
        super().__init__(f"Role {role_name} not found")


class RoleNotSelfAssignableError(DomainError):
    code = "role_not_self_assignable"
    message = "Only doctors and students can self-register"


class DomainNotAllowedError(DomainError):
    code = "domain_not_allowed"

    def __init__(self, allowed_domains: list[str]) -> None:
        self.allowed_domains = allowed_domains
        listed = ", ".join(f"@{d}" for d in allowed_domains)
        super().__init__(f"Email must be from the organization domain: {listed}")


class WeakPasswordError(DomainError):
    code = "weak_password"
    message = "Password does not meet requirements"


class InvalidCredentialsError(DomainError):
    code = "invalid_credentials"
    status_code = 401
    message = "Invalid email or password"


class AccountDeactivatedError(DomainError):
    code = "account_deactivated"
    status_code = 401
    message = "Your account has been deactivated. Please contact an administrator."


class OTPVerificationFailedError(DomainError):
    """Raised by the orchestrator when an OTP check fails."""

    code = "otp_invalid"
    status_code = 401
    message = "OTP verification failed"

    def __init__(self, reason: OTPFailure, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message)


class UnauthenticatedError(DomainError):
    code = "unauthorized"
    status_code = 401
    message = "Authentication required."


class ForbiddenError(DomainError):
    code = "forbidden"
    status_code = 403
    message = "Access denied. Insufficient permissions."


class NotFoundError(DomainError):
    code = "not_found"
    status_code = 404
    message = "Not found"


class ProtectedAccountError(DomainError):
    """Administrator safety rules (admin deactivation, self-deletion, ...)."""

    code = "protected_account"
