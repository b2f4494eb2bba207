"""
auth/tokens.py -- Session token issue and verification (JWT, HS256).

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the account id (sub), email, role
       list, iat and exp. Nothing else -- in particular no verified/active
       flags, because those can change after issue. The Access Guard
       re-reads the account on every request instead.

  Signing key: passed to TokenIssuer once at startup (api lifespan builds it
       from core.config.get_settings()). The issuer owns no other state, so one
       instance is shared by every request.

  Failure kinds: verify() raises TokenVerificationError whose kind tells
       "expired" apart from "tampered" and "garbage". The guard collapses all
       three into a 401, but the kind is logged for diagnostics.

  decode(): a NON-verifying parse for logs and debugging. Never feed its output
       into an authorization decision.

Layer rule: no imports from api/ or admin/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.models import Claims, Role

logger = logging.getLogger("opsmind.auth.tokens")

_ALGORITHM = "HS256"


class TokenFailure(str, Enum):
    EXPIRED = "expired"
    MALFORMED = "malformed"
    SIGNATURE_INVALID = "signature_invalid"


class TokenVerificationError(Exception):
    def __init__(self, kind: TokenFailure) -> None:
        self.kind = kind
        super().__init__(f"token rejected: {kind.value}")


class TokenIssuer:
    """Signs and validates session tokens with one process-wide key.

    Usage:
        issuer = TokenIssuer(settings.secret_key, default_ttl_seconds=settings.token_expire_seconds)
        token = issuer.issue(account.id, account.email, account.roles)
        claims = issuer.verify(token)
    """

    def __init__(self, secret_key: str, algorithm: str = _ALGORITHM, default_ttl_seconds: int = 24 * 3600) -> None:
        if not secret_key:
            raise ValueError("TokenIssuer requires a signing key")
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.default_ttl_seconds = default_ttl_seconds

    def issue(
        self,
        account_id: str,
        email: str,
        roles: Iterable[Role],
        ttl_seconds: int | None = None,
        now: datetime | None = None,
    ) -> str:
        """Encode a signed token that expires ttl_seconds after now.

        now defaults to the current UTC time; tests pass an explicit value to
        place the expiry precisely. A ttl_seconds of zero or less is a caller
        bug and raises ValueError; None means default_ttl_seconds.
        """
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        issued_at = now or datetime.now(timezone.utc)
        duration = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        payload = {
            "sub": account_id,
            "email": email,
            "roles": [Role.parse(r).value for r in roles],
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=duration),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> Claims:
        """Return the verified claims or raise TokenVerificationError."""
        try:
            jwt.get_unverified_header(token)
        except JWTError as exc:
            raise TokenVerificationError(TokenFailure.MALFORMED) from exc

        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except ExpiredSignatureError as exc:
            raise TokenVerificationError(TokenFailure.EXPIRED) from exc
        except JWTClaimsError as exc:
            raise TokenVerificationError(TokenFailure.MALFORMED) from exc
        except JWTError as exc:
            raise TokenVerificationError(TokenFailure.SIGNATURE_INVALID) from exc

        return _payload_to_claims(payload)

    def decode(self, token: str) -> dict | None:
        """Best-effort parse WITHOUT signature or expiry checks. Diagnostics only."""
        try:
            return jwt.get_unverified_claims(token)
        except JWTError:
            return None


def _payload_to_claims(payload: dict) -> Claims:
    sub = payload.get("sub")
    email = payload.get("email")
    raw_roles = payload.get("roles")
    exp = payload.get("exp")
    if not isinstance(sub, str) or not isinstance(email, str) or not isinstance(raw_roles, list) or exp is None:
        raise TokenVerificationError(TokenFailure.MALFORMED)
    try:
        roles = tuple(Role.parse(r) for r in raw_roles)
        expires_at = datetime.fromtimestamp(int(exp), tz=timezone.utc)
    except (ValueError, TypeError) as exc:
        raise TokenVerificationError(TokenFailure.MALFORMED) from exc
    return Claims(account_id=sub, email=email, roles=roles, expires_at=expires_at)
