"""
accounts/store.py -- SQLAlchemy Core writes for the account aggregates.

Pattern: Repository + Data Mapper (same as auth/store.py).

Every create_* method takes the open Connection of the surrounding
transaction instead of opening its own. Provisioning strings them together
with TransactionCoordinator so that an organization, its manager, the
manager's auth link and the credential commit or roll back together. Each
method returns the generated primary key, which the next step references.

Errors are not caught here: an IntegrityError from a racing duplicate signup
propagates to the coordinator, which rolls back and reports StoreFailure.

Layer rule: no imports from api/. Import from core/ and auth/ is allowed.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from accounts.models import DogrunManager, OrganizationContract
from core.database import (
    PASSWORD_GRANT_TYPE,
    auth_dog_owners,
    auth_dogrun_managers,
    dog_owner_credentials,
    dog_owners,
    dogrun_manager_credentials,
    dogrun_managers,
    now_iso,
    organizations,
)
from core.errors import Service, StoreFailure

logger = logging.getLogger("dogrun.accounts")


class AccountStore:
    """Repository for organizations, dog owners, dogrun managers and their auth rows.

    Usage:
        store = AccountStore(engine)
        with engine.begin() as conn:
            owner_id = store.create_dog_owner(conn, "Coco")
            link_id = store.create_auth_dog_owner(conn, owner_id, session_id)
            store.create_dog_owner_credential(conn, link_id, password_hash, email="a@x.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Domain identities
    # ------------------------------------------------------------------

    def create_organization(self, conn: Connection, contract: OrganizationContract) -> int:
        now = now_iso()
        result = conn.execute(
            organizations.insert().values(
                organization_name=contract.organization_name,
                contact_email=contract.contact_email,
                phone_number=contract.phone_number,
                address=contract.address,
                description=contract.description,
                reg_at=now,
                upd_at=now,
            )
        )
        return result.inserted_primary_key[0]

    def create_dog_owner(self, conn: Connection, name: str) -> int:
        now = now_iso()
        result = conn.execute(dog_owners.insert().values(name=name, reg_at=now, upd_at=now))
        return result.inserted_primary_key[0]

    def create_dogrun_manager(self, conn: Connection, organization_id: int, name: str, is_admin: bool = False) -> int:
        now = now_iso()
        result = conn.execute(
            dogrun_managers.insert().values(
                name=name,
                is_admin=1 if is_admin else 0,
                organization_id=organization_id,
                reg_at=now,
                upd_at=now,
            )
        )
        return result.inserted_primary_key[0]

    def get_dogrun_manager(self, manager_id: int) -> DogrunManager | None:
        """Look up a dogrun manager by primary key. Returns None if not found."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(dogrun_managers).where(dogrun_managers.c.dogrun_manager_id == manager_id)
                ).fetchone()
        except SQLAlchemyError as exc:
            logger.error("Could not load dogrun manager %d: %s", manager_id, exc)
            raise StoreFailure(service=Service.DOGRUN_MANAGER) from exc
        return _row_to_dogrun_manager(row) if row is not None else None

    # ------------------------------------------------------------------
    # Identity links
    # ------------------------------------------------------------------

    def create_auth_dog_owner(self, conn: Connection, dog_owner_id: int, session_id: str) -> int:
        result = conn.execute(
            auth_dog_owners.insert().values(dog_owner_id=dog_owner_id, session_id=session_id, login_at=now_iso())
        )
        return result.inserted_primary_key[0]

    def create_auth_dogrun_manager(self, conn: Connection, dogrun_manager_id: int, session_id: str) -> int:
        result = conn.execute(
            auth_dogrun_managers.insert().values(
                dogrun_manager_id=dogrun_manager_id, session_id=session_id, login_at=now_iso()
            )
        )
        return result.inserted_primary_key[0]

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def create_dog_owner_credential(
        self,
        conn: Connection,
        auth_dog_owner_id: int,
        password_hash: str,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> int:
        now = now_iso()
        result = conn.execute(
            dog_owner_credentials.insert().values(
                auth_dog_owner_id=auth_dog_owner_id,
                email=email,
                phone_number=phone_number,
                password_hash=password_hash,
                grant_type=PASSWORD_GRANT_TYPE,
                created_at=now,
                login_at=now,
            )
        )
        return result.inserted_primary_key[0]

    def create_dogrun_manager_credential(
        self, conn: Connection, auth_dogrun_manager_id: int, password_hash: str, email: str
    ) -> int:
        now = now_iso()
        result = conn.execute(
            dogrun_manager_credentials.insert().values(
                auth_dogrun_manager_id=auth_dogrun_manager_id,
                email=email,
                password_hash=password_hash,
                grant_type=PASSWORD_GRANT_TYPE,
                created_at=now,
                login_at=now,
            )
        )
        return result.inserted_primary_key[0]


def _row_to_dogrun_manager(row) -> DogrunManager:
    return DogrunManager(
        id=row.dogrun_manager_id,
        name=row.name,
        is_admin=bool(row.is_admin),
        organization_id=row.organization_id,
        reg_at=row.reg_at,
    )
