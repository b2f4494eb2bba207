"""
API request and response models for OpsMind Auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
admin/models.py, which own the internal domain representation. Route handlers
map between the two.

JSON field names are camelCase (firstName, isActive, requiresOTP). Python
attribute names stay snake_case; the alias generator does the translation and
populate_by_name lets tests build models with either spelling.

Separation of concerns: auth/ and admin/ models = domain truth; api/ models =
API contract. No response model has a password_hash field.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

from admin.models import Building, Technician, TechnicianLevel
from auth.models import Account, OTPPurpose, Role
from auth.policy import EMAIL_PATTERN

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

OTP_PATTERN = r"^\d{4,10}$"
BUILDING_CODE_PATTERN = r"^[A-Za-z0-9]+$"

# Email is trimmed and lower-cased before the pattern check, so " A@Org.Edu "
# validates and reaches the services already normalized.
_Email = Annotated[
    str,
    StringConstraints(strip_whitespace=True, to_lower=True, max_length=255, pattern=EMAIL_PATTERN),
]
# Passwords are never trimmed. Strength rules live in auth/policy.py so the
# WeakPassword error can itemize them; only an upper bound is enforced here.
_Password = Annotated[str, Field(min_length=1, max_length=128)]
_Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]
_OTPCode = Annotated[str, StringConstraints(strip_whitespace=True, pattern=OTP_PATTERN)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class SignupRequest(_CamelModel):
    """Request body for POST /auth/signup.

    role accepts any member of the closed Role set so that ADMIN/TECHNICIAN
    reach the service and are refused with role_not_self_assignable, rather
    than a generic validation error.
    """

    email: _Email
    password: _Password
    first_name: _Name
    last_name: _Name
    role: Role


class LoginRequest(_CamelModel):
    email: _Email
    password: _Password


class VerifyOTPRequest(_CamelModel):
    email: _Email
    otp: _OTPCode
    purpose: OTPPurpose


class ResendOTPRequest(_CamelModel):
    email: _Email
    purpose: OTPPurpose


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserResponse(_CamelResponse):
    """Public view of an Account."""

    id: str
    email: str
    first_name: str
    last_name: str
    is_verified: bool
    is_active: bool
    roles: list[str]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "UserResponse":
        """Factory Method: the Account -> API mapping lives beside the output model."""
        return cls(
            id=account.id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            is_verified=account.is_verified,
            is_active=account.is_active,
            roles=[r.value for r in account.roles],
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class AuthResponse(_CamelResponse):
    """Response for signup, login, and verify-otp.

    token is present only after a successful LOGIN verification. requiresOTP
    tells the client to prompt for a code next.
    """

    message: str
    user: Optional[UserResponse] = None
    token: Optional[str] = None
    requires_otp: bool = Field(default=False, alias="requiresOTP")


class MessageResponse(_CamelResponse):
    message: str


# ---------------------------------------------------------------------------
# Admin -- request models
# ---------------------------------------------------------------------------


class CreateUserRequest(_CamelModel):
    """Request body for POST /admin/users."""

    email: _Email
    password: _Password
    first_name: _Name
    last_name: _Name
    role: Role
    is_verified: bool = True
    is_active: bool = True


class UserStatusUpdate(_CamelModel):
    is_active: bool


class CreateTechnicianRequest(_CamelModel):
    """Request body for POST /admin/technicians. The first building id becomes primary."""

    email: _Email
    password: _Password
    first_name: _Name
    last_name: _Name
    employee_id: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=50)]] = None
    department: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]] = None
    specialization: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=255)]] = None
    level: TechnicianLevel = TechnicianLevel.JUNIOR
    building_ids: list[str] = Field(default_factory=list, max_length=20)


class CreateBuildingRequest(_CamelModel):
    name: _Name
    code: Annotated[
        str,
        StringConstraints(strip_whitespace=True, to_upper=True, min_length=2, max_length=20, pattern=BUILDING_CODE_PATTERN),
    ]
    address: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=255)]] = None


# ---------------------------------------------------------------------------
# Admin -- response models
# ---------------------------------------------------------------------------


class BuildingResponse(_CamelResponse):
    id: str
    name: str
    code: str
    address: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_building(cls, building: Building) -> "BuildingResponse":
        return cls(
            id=building.id,
            name=building.name,
            code=building.code,
            address=building.address,
            created_at=building.created_at,
        )


class TechnicianResponse(_CamelResponse):
    id: str
    user_id: str
    email: str
    first_name: str
    last_name: str
    employee_id: Optional[str] = None
    department: Optional[str] = None
    specialization: Optional[str] = None
    level: str
    buildings: list[BuildingResponse] = Field(default_factory=list)
    is_active: bool
    created_at: Optional[str] = None

    @classmethod
    def from_technician(cls, technician: Technician) -> "TechnicianResponse":
        return cls(
            id=technician.id,
            user_id=technician.account_id,
            email=technician.email,
            first_name=technician.first_name,
            last_name=technician.last_name,
            employee_id=technician.employee_id,
            department=technician.department,
            specialization=technician.specialization,
            level=technician.level.value,
            buildings=[BuildingResponse.from_building(b) for b in technician.buildings],
            is_active=technician.is_active,
            created_at=technician.created_at,
        )


class UserMutationResponse(_CamelResponse):
    message: str
    user: UserResponse


class TechnicianMutationResponse(_CamelResponse):
    message: str
    technician: TechnicianResponse


class BuildingMutationResponse(_CamelResponse):
    message: str
    building: BuildingResponse


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    errors itemizes multi-part failures (weak password rules, field validation).
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    errors: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    message: str = "Auth service is running"
    database: str = "ok"
    version: str
