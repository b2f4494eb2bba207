"""
auth/guard.py -- Request-time authorization.

authorize() runs three checks, in order:
  1. token signature and expiry (TokenIssuer.verify)
  2. the account still exists and is active -- re-read from the store on every
     call. Tokens cannot be revoked by signature alone, so this lookup is what
     makes an administrator's deactivation effective immediately.
  3. role membership, when the endpoint names required roles.

Roles are taken from the token, not the store: a role change takes effect at
the next login. Active state is taken from the store.

Layer rule: framework-free. auth/dependencies.py adapts this to FastAPI.
"""

from __future__ import annotations

import logging
from typing import Iterable

from auth.errors import ForbiddenError, UnauthenticatedError
from auth.models import Claims, Role
from auth.store import CredentialStore
from auth.tokens import TokenIssuer, TokenVerificationError

logger = logging.getLogger("opsmind.auth.guard")


class AccessGuard:
    def __init__(self, store: CredentialStore, token_issuer: TokenIssuer) -> None:
        self.store = store
        self.token_issuer = token_issuer

    def authorize(self, token: str | None, required_roles: Iterable[Role] = ()) -> Claims:
        """Return the token's claims or raise UnauthenticatedError / ForbiddenError."""
        if not token:
            raise UnauthenticatedError("No token provided")

        try:
            claims = self.token_issuer.verify(token)
        except TokenVerificationError as exc:
            logger.info("Token rejected: %s", exc.kind.value)
            raise UnauthenticatedError("Invalid or expired token") from exc

        account = self.store.find_account_by_id(claims.account_id)
        if account is None:
            raise UnauthenticatedError("User not found")
        if not account.is_active:
            raise UnauthenticatedError("Account is deactivated")

        required = frozenset(Role.parse(r) for r in required_roles)
        if required and not claims.has_any_role(required):
            logger.info("Access denied account=%s required=%s", claims.account_id, sorted(r.value for r in required))
            raise ForbiddenError()
        return claims
