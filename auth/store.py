"""
auth/store.py -- SQLAlchemy Core persistence for sessions and credentials.

Pattern: Repository + Data Mapper (same as accounts/store.py).
SessionStore owns the session slot on the identity link tables;
CredentialStore owns credential lookups and the duplicate counts used by
signup. _row_to_credential is the mapper. Service code never touches SQL.

Dispatch:
  Both account kinds keep their session slot in a different link table. The
  table is picked from _LINKS by AccountKind at each call -- there is one
  SessionStore, not a subclass per kind.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or accounts/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Column, Table, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import AccountKind, CredentialRecord
from core.database import (
    PASSWORD_GRANT_TYPE,
    auth_dog_owners,
    auth_dogrun_managers,
    dog_owner_credentials,
    dogrun_manager_credentials,
    dogrun_managers,
    now_iso,
    organizations,
)
from core.errors import AccountNotFound, Service, StoreFailure

logger = logging.getLogger("dogrun.auth")

# AccountKind -> (identity link table, column holding the domain identity id)
_LINKS: dict[AccountKind, tuple[Table, Column]] = {
    AccountKind.DOG_OWNER: (auth_dog_owners, auth_dog_owners.c.dog_owner_id),
    AccountKind.DOGRUN_MANAGER: (auth_dogrun_managers, auth_dogrun_managers.c.dogrun_manager_id),
}


@contextmanager
def _db_errors(action: str, service: Service = Service.AUTH) -> Iterator[None]:
    """Re-raise driver errors as StoreFailure, tagged with the calling service."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Database error while %s: %s", action, exc)
        raise StoreFailure(service=service) from exc


# ---------------------------------------------------------------------------
# Session slot
# ---------------------------------------------------------------------------


class SessionStore:
    """The current session id of every account.

    Usage:
        sessions = SessionStore(engine)
        sessions.set_session_id(42, AccountKind.DOG_OWNER, generate_session_id())
        sessions.current_session_id(42, AccountKind.DOG_OWNER)
        sessions.clear_session_id(42, AccountKind.DOG_OWNER)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def current_session_id(self, account_id: int, kind: AccountKind) -> str | None:
        """Return the stored session id, or None after a revoke.

        Raises AccountNotFound when the account has no identity link row.
        """
        table, account_col = _LINKS[kind]
        with _db_errors("reading session id"):
            with self.engine.connect() as conn:
                row = conn.execute(select(table.c.session_id).where(account_col == account_id)).fetchone()
        if row is None:
            raise AccountNotFound(service=Service.AUTH)
        return row.session_id

    def set_session_id(self, account_id: int, kind: AccountKind, session_id: str) -> None:
        """Overwrite the session slot and stamp the login time.

        Any token carrying the previous session id stops validating from here on.
        """
        table, account_col = _LINKS[kind]
        with _db_errors("writing session id"):
            with self.engine.connect() as conn:
                result = conn.execute(
                    table.update().where(account_col == account_id).values(session_id=session_id, login_at=now_iso())
                )
                conn.commit()
        if result.rowcount == 0:
            raise AccountNotFound(service=Service.AUTH)

    def clear_session_id(self, account_id: int, kind: AccountKind) -> None:
        """Null the session slot. Clearing an empty slot is a no-op."""
        table, account_col = _LINKS[kind]
        with _db_errors("clearing session id"):
            with self.engine.connect() as conn:
                conn.execute(table.update().where(account_col == account_id).values(session_id=None))
                conn.commit()


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class CredentialStore:
    """Read side of the credential tables.

    Writes happen inside the provisioning transaction (accounts/store.py).
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def find_password_credentials(
        self,
        kind: AccountKind,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> list[CredentialRecord]:
        """Return every password-grant credential matching the identifier.

        The unique constraints mean a healthy database yields zero or one row;
        the caller decides what more than one means. Phone lookup only exists
        for dog owners.
        """
        if kind is AccountKind.DOG_OWNER:
            creds = dog_owner_credentials
            stmt = select(
                creds.c.credential_id,
                creds.c.password_hash,
                auth_dog_owners.c.dog_owner_id.label("account_id"),
            ).join(auth_dog_owners, creds.c.auth_dog_owner_id == auth_dog_owners.c.auth_dog_owner_id)
            if phone_number is not None:
                stmt = stmt.where(creds.c.phone_number == phone_number)
            else:
                stmt = stmt.where(creds.c.email == email)
        else:
            creds = dogrun_manager_credentials
            stmt = (
                select(
                    creds.c.credential_id,
                    creds.c.password_hash,
                    dogrun_managers.c.dogrun_manager_id.label("account_id"),
                    dogrun_managers.c.is_admin,
                )
                .join(
                    auth_dogrun_managers,
                    creds.c.auth_dogrun_manager_id == auth_dogrun_managers.c.auth_dogrun_manager_id,
                )
                .join(
                    dogrun_managers,
                    auth_dogrun_managers.c.dogrun_manager_id == dogrun_managers.c.dogrun_manager_id,
                )
                .where(creds.c.email == email)
            )
        stmt = stmt.where(creds.c.grant_type == PASSWORD_GRANT_TYPE)

        with _db_errors("looking up credentials"):
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        return [_row_to_credential(r) for r in rows]

    # ------------------------------------------------------------------
    # Duplicate counts (signup)
    # ------------------------------------------------------------------

    def count_dog_owner_email(self, email: str) -> int:
        return self._count(
            dog_owner_credentials,
            dog_owner_credentials.c.email == email,
            dog_owner_credentials.c.grant_type == PASSWORD_GRANT_TYPE,
            service=Service.DOG_OWNER,
        )

    def count_dog_owner_phone(self, phone_number: str) -> int:
        return self._count(
            dog_owner_credentials,
            dog_owner_credentials.c.phone_number == phone_number,
            dog_owner_credentials.c.grant_type == PASSWORD_GRANT_TYPE,
            service=Service.DOG_OWNER,
        )

    def count_dogrun_manager_email(self, email: str) -> int:
        return self._count(
            dogrun_manager_credentials,
            dogrun_manager_credentials.c.email == email,
            dogrun_manager_credentials.c.grant_type == PASSWORD_GRANT_TYPE,
            service=Service.DOGRUN_MANAGER,
        )

    def count_organization_email(self, contact_email: str) -> int:
        return self._count(organizations, organizations.c.contact_email == contact_email, service=Service.ORG)

    def _count(self, table: Table, *conditions, service: Service) -> int:
        with _db_errors(f"counting {table.name}", service=service):
            with self.engine.connect() as conn:
                result = conn.execute(select(func.count()).select_from(table).where(*conditions)).scalar()
        return result or 0


def _row_to_credential(row) -> CredentialRecord:
    # is_admin only exists on the dogrun manager join.
    return CredentialRecord(
        credential_id=row.credential_id,
        account_id=row.account_id,
        password_hash=row.password_hash,
        is_admin=bool(getattr(row, "is_admin", 0)),
    )
