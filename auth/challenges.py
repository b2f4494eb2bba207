"""
auth/challenges.py -- OTP lifecycle: issue, deliver, verify, consume, purge.

OTPManager sits between the orchestrator and the store. It owns the rules that
span more than one store call:

  issue_and_deliver  create a challenge (store invalidates older ones), hand the
                     plaintext to the mailer, forget it. A delivery failure is
                     logged and reported as False -- the caller decides whether
                     that blocks the flow. Store or hashing failures propagate.

  verify             account lookup -> latest live challenge -> expiry re-check
                     -> bcrypt compare -> conditional consume. Each step has its
                     own OTPFailure reason; the orchestrator decides what the
                     client is allowed to see.

The plaintext code exists only in issue_and_deliver's frame and the mailer call.
It is never logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from auth.hashing import burn_hash_time, verify_secret
from auth.models import OTPPurpose
from auth.otp import DEFAULT_OTP_LENGTH, is_expired
from auth.store import CredentialStore
from core.mailer import Mailer

logger = logging.getLogger("opsmind.auth.challenges")


class OTPFailure(str, Enum):
    ACCOUNT_NOT_FOUND = "account_not_found"
    NO_CHALLENGE = "no_challenge"
    EXPIRED = "expired"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class OTPVerification:
    valid: bool
    account_id: str | None = None
    reason: OTPFailure | None = None


class OTPManager:
    """Issues and verifies one-time passcodes for a single store and mailer.

    Usage:
        manager = OTPManager(store, mailer, code_length=6, expiry_minutes=5)
        manager.issue_and_deliver(account.id, account.email, OTPPurpose.LOGIN)
        result = manager.verify(account.email, "004213", OTPPurpose.LOGIN)
    """

    def __init__(
        self,
        store: CredentialStore,
        mailer: Mailer,
        code_length: int = DEFAULT_OTP_LENGTH,
        expiry_minutes: int = 5,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.code_length = code_length
        self.expiry_minutes = expiry_minutes

    def issue_and_deliver(self, account_id: str, email: str, purpose: OTPPurpose) -> bool:
        code, challenge = self.store.create_otp_challenge(
            account_id,
            purpose,
            length=self.code_length,
            expiry_minutes=self.expiry_minutes,
        )
        try:
            delivered = self.mailer.send_otp(email, code, purpose.value)
        except Exception:
            # Transport bugs must not turn a created account into a 500; the
            # user can always ask for a resend.
            logger.exception("OTP delivery raised for account=%s purpose=%s", account_id, purpose.value)
            return False
        if delivered:
            logger.info("OTP issued account=%s purpose=%s challenge=%s", account_id, purpose.value, challenge.id)
        else:
            logger.warning("OTP delivery failed account=%s purpose=%s", account_id, purpose.value)
        return delivered

    def verify(self, email: str, code: str, purpose: OTPPurpose, now: datetime | None = None) -> OTPVerification:
        now = now or datetime.now(timezone.utc)

        account = self.store.find_account_by_email(email)
        if account is None:
            burn_hash_time(code)
            return OTPVerification(valid=False, reason=OTPFailure.ACCOUNT_NOT_FOUND)

        # Every rejection pays one bcrypt comparison so the response time does
        # not reveal whether the email is registered.
        challenge = self.store.find_latest_valid_otp(account.id, purpose, now=now)
        if challenge is None:
            burn_hash_time(code)
            return OTPVerification(valid=False, account_id=account.id, reason=OTPFailure.NO_CHALLENGE)

        # The store already filters on expires_at; re-check on the parsed value.
        if is_expired(challenge.expires_at, now):
            burn_hash_time(code)
            return OTPVerification(valid=False, account_id=account.id, reason=OTPFailure.EXPIRED)

        if not verify_secret(code, challenge.code_hash):
            return OTPVerification(valid=False, account_id=account.id, reason=OTPFailure.MISMATCH)

        if not self.store.mark_otp_used(challenge.id):
            # A concurrent verify consumed it between our read and our update.
            # verify_secret above already paid the bcrypt comparison.
            return OTPVerification(valid=False, account_id=account.id, reason=OTPFailure.NO_CHALLENGE)

        if purpose is OTPPurpose.VERIFICATION:
            self.store.set_verified(account.id, True)
        return OTPVerification(valid=True, account_id=account.id)

    def purge(self) -> int:
        removed = self.store.purge_expired_or_used_otps()
        if removed:
            logger.info("Purged %d expired or used OTP challenges", removed)
        return removed
