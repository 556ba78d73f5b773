"""
api/routes/auth.py -- Login, revoke and identity endpoints.

Routes:
  POST /auth/dogowner/token   -- dog owner login (email or phone); public
  POST /auth/dogrunmg/token   -- dogrun manager login (email); public
  POST /auth/dogowner/revoke  -- end the dog owner's session (DOG_MANAGE)
  POST /auth/dogrunmg/revoke  -- end the manager's session (DOGRUN_MANAGE)
  GET  /auth/me               -- claims of the current token (ALL)

Security:
  Both login routes are rate-limited per client IP (LOGIN_RATE_LIMIT).
  LoginService answers unknown identifier and wrong password with the same
  message and comparable timing.
  Cache-Control: no-store on every response carrying a token.

Handlers are sync (def, not async def): the services do blocking bcrypt and
database work, and FastAPI runs sync handlers in its thread pool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import DogOwnerLoginRequest, DogrunManagerLoginRequest, MeResponse, TokenResponse
from auth.dependencies import require_roles
from auth.guard import ALL, DOG_MANAGE, DOGRUN_MANAGE
from auth.models import AccountKind, TokenClaims
from auth.service import LoginService, RevokeService
from core.config import get_settings

# Auth policy:
# - POST /auth/dogowner/token:   public -- login endpoint must be unauthenticated
# - POST /auth/dogrunmg/token:   public
# - POST /auth/dogowner/revoke:  DOG_MANAGE
# - POST /auth/dogrunmg/revoke:  DOGRUN_MANAGE
# - GET  /auth/me:               ALL
router = APIRouter()

_LOGIN_LIMIT = get_settings().login_rate_limit


def token_response(token: str, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=TokenResponse(access_token=token).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_LOGIN_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/dogowner/token", response_model=TokenResponse)
def dog_owner_login(request: Request, body: DogOwnerLoginRequest) -> JSONResponse:
    """Log a dog owner in with email or phone number and return a bearer token.

    Any token from an earlier login of the same account stops working.
    """
    service: LoginService = request.app.state.login_service
    token = service.login(
        AccountKind.DOG_OWNER,
        body.password,
        email=body.email,
        phone_number=body.phone_number,
    )
    return token_response(token)


@limiter.limit(_LOGIN_LIMIT)
@router.post("/auth/dogrunmg/token", response_model=TokenResponse)
def dogrun_manager_login(request: Request, body: DogrunManagerLoginRequest) -> JSONResponse:
    """Log a dogrun manager in with email and return a bearer token."""
    service: LoginService = request.app.state.login_service
    token = service.login(AccountKind.DOGRUN_MANAGER, body.password, email=body.email)
    return token_response(token)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/dogowner/revoke")
def dog_owner_revoke(request: Request, claims: TokenClaims = Depends(require_roles(DOG_MANAGE))) -> Response:
    """Revoke the caller's session. The presented token is invalid afterwards."""
    service: RevokeService = request.app.state.revoke_service
    service.revoke(claims.account_id, AccountKind.DOG_OWNER)
    return Response(status_code=200)


@router.post("/auth/dogrunmg/revoke")
def dogrun_manager_revoke(request: Request, claims: TokenClaims = Depends(require_roles(DOGRUN_MANAGE))) -> Response:
    service: RevokeService = request.app.state.revoke_service
    service.revoke(claims.account_id, AccountKind.DOGRUN_MANAGER)
    return Response(status_code=200)


@router.get("/auth/me", response_model=MeResponse)
def me(claims: TokenClaims = Depends(require_roles(ALL))) -> MeResponse:
    """Return the identity carried by the current token."""
    kind = claims.account_kind
    return MeResponse(
        account_id=claims.account_id,
        account_kind=kind.value if kind is not None else "",
        role=int(claims.role),
    )
