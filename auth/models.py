"""
auth/models.py -- Domain enums and dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond parsing). Stores
own persistence; services own the state machine; routes own serialization.

Layer rule: no imports from api/ or admin/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """The fixed, closed set of roles. Never created at runtime."""

    ADMIN = "ADMIN"
    TECHNICIAN = "TECHNICIAN"
    DOCTOR = "DOCTOR"
    STUDENT = "STUDENT"

    @classmethod
    def parse(cls, value: str | Role) -> Role:
        """Return the Role for value or raise ValueError if it is not in the set."""
        if isinstance(value, cls):
            return value
        return cls(str(value).upper())


ROLE_DESCRIPTIONS: dict[Role, str] = {
    Role.ADMIN: "System administrator with full access",
    Role.TECHNICIAN: "IT support technician",
    Role.DOCTOR: "Faculty member / Doctor",
    Role.STUDENT: "Student user",
}

# Self-registration may only create these assignments. ADMIN and TECHNICIAN
# accounts are issued by an administrator.
SELF_ASSIGNABLE_ROLES: frozenset[Role] = frozenset({Role.DOCTOR, Role.STUDENT})


class OTPPurpose(str, Enum):
    VERIFICATION = "VERIFICATION"
    LOGIN = "LOGIN"


@dataclass
class Account:
    """An identity record.

    email is stored lower-cased and stripped; the store normalizes on every
    write and lookup so the UNIQUE constraint is effectively case-insensitive.

    password_hash is a bcrypt digest. It stays inside auth/ -- the API layer
    maps Account to a response model that has no such field.

    roles is empty unless the account was loaded via a *_with_roles lookup.
    """

    email: str
    password_hash: str
    first_name: str
    last_name: str
    id: str | None = None
    is_verified: bool = False
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None
    roles: list[Role] = field(default_factory=list)

    def has_role(self, role: Role) -> bool:
        return role in self.roles


@dataclass
class OTPChallenge:
    """A stored one-time passcode challenge.

    code_hash is the bcrypt digest of the code. The plaintext is returned to the
    caller exactly once, at creation, and never persisted.
    """

    account_id: str
    purpose: OTPPurpose
    code_hash: str
    expires_at: datetime  # timezone-aware UTC
    id: str | None = None
    is_used: bool = False
    created_at: str | None = None


@dataclass(frozen=True)
class Claims:
    """Verified contents of a session token."""

    account_id: str
    email: str
    roles: tuple[Role, ...]
    expires_at: datetime

    def has_any_role(self, required: set[Role] | frozenset[Role]) -> bool:
        return bool(required.intersection(self.roles))
