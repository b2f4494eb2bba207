"""
api/routes/auth.py -- Credential lifecycle REST endpoints.

Routes:
  POST /auth/signup        -- self-registration (DOCTOR/STUDENT); sends VERIFICATION OTP; 201
  POST /auth/login         -- password check; sends an OTP, never a token
  POST /auth/verify-otp    -- consume an OTP; LOGIN purpose returns the session token
  POST /auth/resend-otp    -- always 200 with the same message
  GET  /auth/me            -- current account (requires auth)

Security:
  login, verify-otp and resend-otp are rate-limited per client IP
  (LOGIN_RATE_LIMIT / OTP_RATE_LIMIT).
  Cache-Control: no-store on every response that can carry a token.
  Handlers are plain `def`: every path reaches bcrypt, which must run in the
  threadpool rather than on the event loop.
  Expected failures are DomainError subclasses raised by AuthService and
  rendered by the handler in api/main.py -- no HTTPException here.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter, login_limit, otp_limit
from api.models import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    ResendOTPRequest,
    SignupRequest,
    UserResponse,
    VerifyOTPRequest,
)
from auth.dependencies import get_current_claims
from auth.errors import UnauthenticatedError
from auth.models import Claims
from auth.service import AuthResult, AuthService
from auth.store import CredentialStore

# Auth policy:
# - POST /auth/signup:      public
# - POST /auth/login:       public, rate-limited
# - POST /auth/verify-otp:  public, rate-limited
# - POST /auth/resend-otp:  public, rate-limited
# - GET  /auth/me:          requires auth (get_current_claims)
router = APIRouter()


def _to_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        message=result.message,
        user=UserResponse.from_account(result.account) if result.account else None,
        token=result.token,
        requires_otp=result.requires_otp,
    )


@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> AuthResponse:
    """Register an unverified account and email a VERIFICATION code."""
    service: AuthService = request.app.state.auth_service
    result = service.signup(body.email, body.password, body.first_name, body.last_name, body.role)
    return _to_response(result)


@limiter.limit(login_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Check the password and email an OTP.

    Unknown email and wrong password produce the identical 401 body.
    """
    service: AuthService = request.app.state.auth_service
    result = service.login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return _to_response(result)


@limiter.limit(otp_limit)
@router.post("/auth/verify-otp", response_model=AuthResponse)
def verify_otp(request: Request, response: Response, body: VerifyOTPRequest) -> AuthResponse:
    """Consume a code. VERIFICATION sends a LOGIN code; LOGIN returns the token."""
    service: AuthService = request.app.state.auth_service
    result = service.verify_otp(body.email, body.otp, body.purpose)
    response.headers["Cache-Control"] = "no-store"
    return _to_response(result)


@limiter.limit(otp_limit)
@router.post("/auth/resend-otp", response_model=MessageResponse)
def resend_otp(request: Request, body: ResendOTPRequest) -> MessageResponse:
    """Same 200 response whether or not the email is registered."""
    service: AuthService = request.app.state.auth_service
    result = service.resend_otp(body.email, body.purpose)
    return MessageResponse(message=result.message)


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, claims: Claims = Depends(get_current_claims)) -> UserResponse:
    """Return the current account as stored now (flags are fresh, roles included)."""
    credentials: CredentialStore = request.app.state.credentials
    account = credentials.find_account_with_roles(account_id=claims.account_id)
    if account is None:
        raise UnauthenticatedError("User not found")
    return UserResponse.from_account(account)
