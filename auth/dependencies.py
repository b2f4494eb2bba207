"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

One auth method: Authorization: Bearer <token>. There are no cookies and no
API keys; every protected route passes through AccessGuard.authorize().

get_current_claims() requires any authenticated, active account.
require_roles(*roles) builds a dependency that additionally requires one of
the given roles. Failures raise DomainError subclasses, which api/main.py maps
to the standard 401/403 error envelope.

The guard is read from request.app.state.guard, wired by the api lifespan.

Layer rule: no imports from api/ or admin/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Request

from auth.guard import AccessGuard
from auth.models import Claims, Role


def bearer_token(request: Request) -> str | None:
    """Return the token from an "Authorization: Bearer ..." header, if present."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def get_current_claims(request: Request) -> Claims:
    """Require authentication. Raises UnauthenticatedError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: Claims = Depends(get_current_claims)): ...
    """
    guard: AccessGuard = request.app.state.guard
    return guard.authorize(bearer_token(request))


def require_roles(*roles: Role) -> Callable[[Request], Claims]:
    """Build a dependency requiring one of roles. 401 if unauthenticated, 403 if not permitted.

    Use as a FastAPI dependency:
        @router.post("/admin-only")
        def route(claims: Claims = Depends(require_roles(Role.ADMIN))): ...
    """
    required = tuple(roles)

    def dependency(request: Request) -> Claims:
        guard: AccessGuard = request.app.state.guard
        return guard.authorize(bearer_token(request), required)

    return dependency


require_admin = require_roles(Role.ADMIN)
