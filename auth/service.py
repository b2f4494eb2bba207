"""
auth/service.py -- The credential lifecycle state machine.

    UNAUTHENTICATED
      -> signup                          PENDING_VERIFICATION   (VERIFICATION OTP sent)
      -> verify_otp(VERIFICATION)        VERIFIED_NO_SESSION    (LOGIN OTP sent)
      -> login (password ok)             LOGIN_CHALLENGE_SENT   (fresh LOGIN OTP sent)
      -> verify_otp(LOGIN)               AUTHENTICATED          (token issued)

AuthService is constructed once at startup with its collaborators and holds no
other state. Every method either returns an AuthResult or raises a DomainError
subclass; anything else escaping from here is an unexpected fault.

Enumeration rules:
  login        unknown email and wrong password raise the same
               InvalidCredentialsError, and both paths pay one bcrypt
               comparison. The password is checked BEFORE the active flag, so
               "deactivated" is only ever revealed to someone holding the
               password.
  verify_otp   an unknown email is reported exactly like "no challenge".
  resend_otp   always the same message; absent accounts burn a dummy hash.
               Deliberately narrower than "send to any existing account":
               VERIFICATION codes go only to active, unverified accounts,
               and a LOGIN code only while a live LOGIN challenge exists.
               A resend therefore can never stand in for the password step.

Signup's duplicate-email branch is explicit ("User with this email already
exists"). That is the one deliberate exception and it is confined to signup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.challenges import OTPFailure, OTPManager
from auth.errors import (
    AccountDeactivatedError,
    DomainNotAllowedError,
    DuplicateEmailError,
    InvalidCredentialsError,
    OTPVerificationFailedError,
    RoleNotSelfAssignableError,
    UnknownRoleError,
    WeakPasswordError,
)
from auth.hashing import burn_hash_time, hash_secret, verify_secret
from auth.models import SELF_ASSIGNABLE_ROLES, Account, OTPPurpose, Role
from auth.policy import is_organization_email, normalize_email, password_problems
from auth.store import CredentialStore
from auth.tokens import TokenIssuer

logger = logging.getLogger("opsmind.auth.service")

SIGNUP_MESSAGE = "Registration successful. Please check your email for verification OTP."
VERIFY_FIRST_MESSAGE = "Please verify your account first. A new verification OTP has been sent."
LOGIN_OTP_MESSAGE = "Please enter the OTP sent to your email to complete login."
VERIFIED_MESSAGE = "Account verified successfully. Please check your email for login OTP."
LOGIN_SUCCESS_MESSAGE = "Login successful"
RESEND_MESSAGE = "If the email exists, an OTP will be sent."

_OTP_FAILURE_MESSAGES: dict[OTPFailure, str] = {
    OTPFailure.ACCOUNT_NOT_FOUND: "No valid OTP found. Please request a new one.",
    OTPFailure.NO_CHALLENGE: "No valid OTP found. Please request a new one.",
    OTPFailure.EXPIRED: "OTP has expired. Please request a new one.",
    OTPFailure.MISMATCH: "Invalid OTP",
}


@dataclass
class AuthResult:
    message: str
    account: Account | None = None
    token: str | None = None
    requires_otp: bool = False


class AuthService:
    """Signup, login, OTP verification and resend.

    Usage:
        service = AuthService(store, otp_manager, issuer, ["org.edu"], token_ttl_seconds=86400)
        service.signup("a@org.edu", "Abc12345!", "Ada", "Lovelace", Role.STUDENT)
        service.verify_otp("a@org.edu", code, OTPPurpose.VERIFICATION)
    """

    def __init__(
        self,
        store: CredentialStore,
        otp_manager: OTPManager,
        token_issuer: TokenIssuer,
        allowed_domains: list[str],
        token_ttl_seconds: int | None = None,
    ) -> None:
        self.store = store
        self.otp_manager = otp_manager
        self.token_issuer = token_issuer
        self.allowed_domains = list(allowed_domains)
        self.token_ttl_seconds = token_ttl_seconds

    # ------------------------------------------------------------------
    # signup
    # ------------------------------------------------------------------

    def signup(self, email: str, password: str, first_name: str, last_name: str, role: Role | str) -> AuthResult:
        try:
            requested = Role.parse(role)
        except ValueError as exc:
            raise UnknownRoleError(str(role)) from exc
        if requested not in SELF_ASSIGNABLE_ROLES:
            raise RoleNotSelfAssignableError()

        email = normalize_email(email)
        if not is_organization_email(email, self.allowed_domains):
            raise DomainNotAllowedError(self.allowed_domains)

        problems = password_problems(password)
        if problems:
            raise WeakPasswordError(errors=problems)

        if self.store.find_account_by_email(email) is not None:
            raise DuplicateEmailError()

        account = self.store.create_account(
            email=email,
            password_hash=hash_secret(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
        )
        self.store.assign_role(account.id, requested)
        self.otp_manager.issue_and_deliver(account.id, account.email, OTPPurpose.VERIFICATION)
        logger.info("Account registered id=%s role=%s", account.id, requested.value)

        return AuthResult(
            message=SIGNUP_MESSAGE,
            account=self.store.find_account_with_roles(account_id=account.id),
            requires_otp=True,
        )

    # ------------------------------------------------------------------
    # login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> AuthResult:
        """Check the password and send an OTP. Never returns a token."""
        account = self.store.find_account_by_email(email)
        if account is None:
            burn_hash_time(password)
            logger.info("Login rejected: unknown email")
            raise InvalidCredentialsError()

        if not verify_secret(password, account.password_hash):
            logger.info("Login rejected: wrong password account=%s", account.id)
            raise InvalidCredentialsError()

        if not account.is_active:
            logger.info("Login rejected: deactivated account=%s", account.id)
            raise AccountDeactivatedError()

        if not account.is_verified:
            self.otp_manager.issue_and_deliver(account.id, account.email, OTPPurpose.VERIFICATION)
            return AuthResult(message=VERIFY_FIRST_MESSAGE, requires_otp=True)

        self.otp_manager.issue_and_deliver(account.id, account.email, OTPPurpose.LOGIN)
        return AuthResult(message=LOGIN_OTP_MESSAGE, requires_otp=True)

    # ------------------------------------------------------------------
    # verify_otp
    # ------------------------------------------------------------------

    def verify_otp(self, email: str, code: str, purpose: OTPPurpose) -> AuthResult:
        result = self.otp_manager.verify(email, code, purpose)
        if not result.valid:
            logger.info("OTP rejected purpose=%s reason=%s", purpose.value, result.reason.value)
            raise OTPVerificationFailedError(result.reason, _OTP_FAILURE_MESSAGES[result.reason])

        account = self.store.find_account_with_roles(account_id=result.account_id)
        if account is None:
            # Deleted by an administrator between consume and reload.
            raise OTPVerificationFailedError(
                OTPFailure.NO_CHALLENGE, _OTP_FAILURE_MESSAGES[OTPFailure.NO_CHALLENGE]
            )

        if purpose is OTPPurpose.VERIFICATION:
            self.otp_manager.issue_and_deliver(account.id, account.email, OTPPurpose.LOGIN)
            logger.info("Account verified id=%s", account.id)
            return AuthResult(message=VERIFIED_MESSAGE, account=account, requires_otp=True)

        if not account.is_active:
            raise AccountDeactivatedError()

        token = self.token_issuer.issue(account.id, account.email, account.roles, ttl_seconds=self.token_ttl_seconds)
        logger.info("Session issued account=%s", account.id)
        return AuthResult(message=LOGIN_SUCCESS_MESSAGE, account=account, token=token)

    # ------------------------------------------------------------------
    # resend_otp
    # ------------------------------------------------------------------

    def resend_otp(self, email: str, purpose: OTPPurpose) -> AuthResult:
        """Replace the caller's challenge if there is one to replace.

        VERIFICATION is resent only for active, unverified accounts. LOGIN is
        resent only while a live LOGIN challenge exists -- i.e. the password
        step was passed within the expiry window -- so resend can never stand
        in for the password check. Every other case silently does nothing.
        """
        account = self.store.find_account_by_email(email)
        if account is None or not account.is_active or not self._resend_allowed(account, purpose):
            burn_hash_time(email)
            return AuthResult(message=RESEND_MESSAGE)

        self.otp_manager.issue_and_deliver(account.id, account.email, purpose)
        return AuthResult(message=RESEND_MESSAGE)

    def _resend_allowed(self, account: Account, purpose: OTPPurpose) -> bool:
        if purpose is OTPPurpose.VERIFICATION:
            return not account.is_verified
        return account.is_verified and self.store.find_latest_valid_otp(account.id, OTPPurpose.LOGIN) is not None
