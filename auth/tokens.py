"""
auth/tokens.py -- Session ids, JWT issuance, and JWT validation.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the account id (`sub`, as a
       string), the session id (`sid`), the integer role and the expiry.
       Nothing in the token is persisted server-side except the session id,
       which lives in the account's auth link row.

  Session ids: secrets.token_urlsafe(32) -- 256 bits of entropy, 43 URL-safe
       characters. No uniqueness check against existing sessions; a collision
       is not a practical concern at this entropy.

  Validation order: header -> signature -> expiry -> session match. Expiry is
       checked by hand after the signature (the library check is disabled) so
       an expired token is reported as expired, and so a dead token never
       costs a database round trip.

Layer rule: no imports from api/ or accounts/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Protocol

from jose import JWTError, jwt

from auth.models import AccountKind, Role, TokenClaims
from core.errors import (
    AccountNotFound,
    SessionIdGenerationFailed,
    SessionRevoked,
    SigningFailed,
    TokenExpired,
    TokenInvalid,
    TokenMissing,
)

logger = logging.getLogger("dogrun.auth")

ALGORITHM = "HS256"

_BEARER_PREFIX = "Bearer "
_SESSION_ID_BYTES = 32


class SessionLookup(Protocol):
    def current_session_id(self, account_id: int, kind: AccountKind) -> str | None: ...


# ---------------------------------------------------------------------------
# Session ids
# ---------------------------------------------------------------------------


def generate_session_id() -> str:
    """Return a fresh opaque, URL-safe session id (43 characters)."""
    try:
        return secrets.token_urlsafe(_SESSION_ID_BYTES)
    except OSError as exc:
        logger.error("Could not read randomness for session id: %s", exc)
        raise SessionIdGenerationFailed() from exc


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Builds and signs bearer tokens.

    Usage:
        issuer = TokenIssuer(settings.secret_key, settings.token_expire_hours)
        token = issuer.issue(account_id=42, session_id=generate_session_id(), role=Role.DOGOWNER)
    """

    def __init__(self, secret_key: str, expire_hours: int) -> None:
        self._secret_key = secret_key
        self.expire_hours = expire_hours

    def issue(self, account_id: int, session_id: str, role: Role) -> str:
        if isinstance(account_id, bool) or not isinstance(account_id, int):
            raise SigningFailed(f"Subject id must be an integer, got {type(account_id).__name__}.")
        expire = datetime.now(timezone.utc) + timedelta(hours=self.expire_hours)
        payload = {
            "sub": str(account_id),
            "sid": session_id,
            "role": int(role),
            "exp": expire,
        }
        try:
            return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)
        except (JWTError, TypeError, ValueError) as exc:
            logger.error("Token signing failed: %s", exc)
            raise SigningFailed() from exc


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TokenValidator:
    """Turns an Authorization header into verified TokenClaims or raises.

    Every rejection is a ClientError subclass:
      TokenMissing   -- no header, or not `Bearer <token>`
      TokenInvalid   -- bad signature, malformed claims, role without an account
      TokenExpired   -- `exp` in the past
      SessionRevoked -- `sid` is not the account's current session id
    A database failure during the session lookup surfaces as StoreFailure.
    """

    def __init__(self, secret_key: str, sessions: SessionLookup) -> None:
        self._secret_key = secret_key
        self.sessions = sessions

    def validate(self, authorization: str | None) -> TokenClaims:
        token = _extract_bearer(authorization)
        payload = self._verify_signature(token)
        account_id, session_id, role, expires_at = _parse_claims(payload)

        if expires_at <= datetime.now(timezone.utc):
            logger.info("Rejected expired token for account %d", account_id)
            raise TokenExpired()

        kind = role.account_kind
        if kind is None:
            logger.warning("Rejected token with role %s: no account kind", role.name)
            raise TokenInvalid("Unknown user role.")

        try:
            current = self.sessions.current_session_id(account_id, kind)
        except AccountNotFound as exc:
            logger.info("Rejected token for unknown %s account %d", kind.value, account_id)
            raise SessionRevoked() from exc
        if current is None or not secrets.compare_digest(current, session_id):
            logger.info("Rejected token with stale session for %s account %d", kind.value, account_id)
            raise SessionRevoked()

        return TokenClaims(account_id=account_id, session_id=session_id, role=role, expires_at=expires_at)

    def _verify_signature(self, token: str) -> dict:
        try:
            return jwt.decode(token, self._secret_key, algorithms=[ALGORITHM], options={"verify_exp": False})
        except JWTError as exc:
            logger.info("Rejected token: %s", exc)
            raise TokenInvalid() from exc


def _extract_bearer(authorization: str | None) -> str:
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        raise TokenMissing()
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise TokenMissing()
    return token


def _parse_claims(payload: dict) -> tuple[int, str, Role, datetime]:
    sub = payload.get("sub")
    sid = payload.get("sid")
    role = payload.get("role")
    exp = payload.get("exp")
    if not isinstance(sub, str) or not (sub.isascii() and sub.isdigit()):
        raise TokenInvalid("Token subject is malformed.")
    if not isinstance(sid, str) or not sid:
        raise TokenInvalid("Token session id is missing.")
    if not sid.isascii():
        raise TokenInvalid("Token session id is malformed.")
    if isinstance(role, bool) or not isinstance(role, int):
        raise TokenInvalid("Token role is malformed.")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise TokenInvalid("Token expiry is missing.")
    try:
        parsed_role = Role(role)
    except ValueError as exc:
        raise TokenInvalid("Unknown user role.") from exc
    try:
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise TokenInvalid("Token expiry is malformed.") from exc
    return int(sub), sid, parsed_role, expires_at
