"""
auth/service.py -- Login and revoke.

LoginService:
  identifier + password -> credential lookup -> bcrypt verify -> new session
  id written to the session slot -> signed token. Writing the slot is what
  invalidates every token issued by an earlier login of the same account.

  Unknown identifiers still pay for one bcrypt verify against a dummy hash
  so response time does not reveal whether the identifier exists. Both
  "no such credential" and "wrong password" answer with the same message.

RevokeService:
  Nulls the session slot. The bearer's own token dies with it.

Layer rule: no imports from api/ or accounts/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from auth.models import AccountKind
from auth.passwords import CredentialHasher
from auth.store import CredentialStore, SessionStore
from auth.tokens import TokenIssuer, generate_session_id
from core.errors import (
    AuthenticationFailed,
    CredentialNotFound,
    DataInconsistency,
    InvalidIdentifier,
    Service,
)

_logger = logging.getLogger("dogrun.auth")

_DUMMY_PASSWORD = "dogrun_timing_dummy"


def require_one_identifier(email: str | None, phone_number: str | None, service: Service) -> None:
    """Raise InvalidIdentifier unless exactly one of email / phone number is set."""
    if (email is None) == (phone_number is None):
        raise InvalidIdentifier(service=service)


class LoginService:
    def __init__(
        self,
        credentials: CredentialStore,
        sessions: SessionStore,
        hasher: CredentialHasher,
        issuer: TokenIssuer,
        logger: logging.Logger | None = None,
    ) -> None:
        self.credentials = credentials
        self.sessions = sessions
        self.hasher = hasher
        self.issuer = issuer
        self.logger = logger or _logger
        # Hashed once per service with the configured cost so the dummy
        # verify costs the same as a real one.
        self._dummy_hash = hasher.hash(_DUMMY_PASSWORD)

    def login(
        self,
        kind: AccountKind,
        password: str,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> str:
        """Authenticate and return a fresh bearer token.

        Dog owners log in with exactly one of email or phone number; dogrun
        managers log in with email only.

        Raises:
          InvalidIdentifier   -- identifier combination not allowed for kind
          CredentialNotFound  -- no password credential for the identifier
          AuthenticationFailed -- password does not match
          DataInconsistency   -- more than one credential matched
        """
        if kind is AccountKind.DOG_OWNER:
            require_one_identifier(email, phone_number, Service.AUTH)
        elif email is None or phone_number is not None:
            raise InvalidIdentifier("Log in with an email address.", service=Service.AUTH)

        records = self.credentials.find_password_credentials(kind, email=email, phone_number=phone_number)
        if not records:
            # Equalize timing -- do NOT return before running bcrypt
            self.hasher.verify(self._dummy_hash, password)
            self.logger.info("Login failed for %s: unknown identifier", kind.value)
            raise CredentialNotFound()
        if len(records) > 1:
            self.logger.error(
                "Login found %d credentials for one %s identifier: %s",
                len(records),
                kind.value,
                [r.credential_id for r in records],
            )
            raise DataInconsistency("Multiple credentials match this identifier.")

        record = records[0]
        if record.password_hash is None or not self.hasher.verify(record.password_hash, password):
            self.logger.info("Login failed for %s account %d: bad password", kind.value, record.account_id)
            raise AuthenticationFailed()

        session_id = generate_session_id()
        self.sessions.set_session_id(record.account_id, kind, session_id)
        token = self.issuer.issue(record.account_id, session_id, kind.role(record.is_admin))
        self.logger.info("Login succeeded for %s account %d", kind.value, record.account_id)
        return token


class RevokeService:
    def __init__(self, sessions: SessionStore, logger: logging.Logger | None = None) -> None:
        self.sessions = sessions
        self.logger = logger or _logger

    def revoke(self, account_id: int, kind: AccountKind) -> None:
        """Invalidate every outstanding token of the account. Idempotent."""
        self.sessions.clear_session_id(account_id, kind)
        self.logger.info("Session revoked for %s account %d", kind.value, account_id)
