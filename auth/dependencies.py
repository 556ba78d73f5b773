"""
auth/dependencies.py -- FastAPI Depends() helpers for authorization.

The bearer token itself is checked earlier, by the authentication middleware
in api/main.py, which stores the accepted TokenClaims on request.state.
These helpers only read that result:

  get_claims()          -- the verified claims; TokenMissing if the middleware
                           did not run for this path (public route).
  require_roles(roles)  -- get_claims() plus the role check from auth/guard.py;
                           Forbidden (403) if the role is not allowed.

Layer rule: no imports from accounts/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.guard import authorize
from auth.models import Role, TokenClaims
from core.errors import TokenMissing


def get_claims(request: Request) -> TokenClaims:
    """Return the claims the authentication middleware accepted for this request."""
    claims: TokenClaims | None = getattr(request.state, "claims", None)
    if claims is None:
        raise TokenMissing()
    return claims


def require_roles(allowed: frozenset[Role]) -> Callable[[Request], TokenClaims]:
    """Build a dependency that admits only the given roles.

    Use as a FastAPI dependency:
        @router.post("/auth/dogowner/revoke")
        def route(claims: TokenClaims = Depends(require_roles(DOG_MANAGE))): ...
    """

    def dependency(request: Request) -> TokenClaims:
        claims = get_claims(request)
        authorize(claims.role, allowed)
        return claims

    return dependency
