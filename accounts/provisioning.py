"""
accounts/provisioning.py -- Create an account aggregate and log it in.

Each service follows the same sequence:

  1. validate input that needs no I/O (identifier combination)
  2. hash the password
  3. generate the session id the new account starts with
  4. duplicate checks -- any hit raises AlreadyRegistered before a row exists
  5. ordered inserts in one transaction, each step using the key of the last
  6. sign a token for the new identity with the session id from step 3

A failure anywhere before step 6 leaves no rows and hands out no token. The
session id only exists in the database once the transaction has committed.

Aggregates:
  dog owner      dog_owners -> auth_dog_owners -> dog_owner_credentials
  organization   organizations -> dogrun_managers (admin) -> auth_dogrun_managers
                 -> dogrun_manager_credentials
  dogrun manager dogrun_managers (in the admin's organization) -> auth_dogrun_managers
                 -> dogrun_manager_credentials

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from accounts.models import DogOwnerSignUp, DogrunManagerSignUp, OrganizationContract
from accounts.store import AccountStore
from auth.models import AccountKind
from auth.passwords import CredentialHasher
from auth.service import require_one_identifier
from auth.store import CredentialStore
from auth.tokens import TokenIssuer, generate_session_id
from core.errors import AccountNotFound, AlreadyRegistered, Forbidden, Service
from core.transaction import TransactionCoordinator

_logger = logging.getLogger("dogrun.accounts")

# Display name of the first manager created with every organization.
ADMIN_MANAGER_NAME = "admin"


class _Provisioning:
    def __init__(
        self,
        accounts: AccountStore,
        credentials: CredentialStore,
        coordinator: TransactionCoordinator,
        hasher: CredentialHasher,
        issuer: TokenIssuer,
        logger: logging.Logger | None = None,
    ) -> None:
        self.accounts = accounts
        self.credentials = credentials
        self.coordinator = coordinator
        self.hasher = hasher
        self.issuer = issuer
        self.logger = logger or _logger


class DogOwnerProvisioning(_Provisioning):
    def sign_up(self, req: DogOwnerSignUp) -> str:
        """Register a dog owner by email or phone number and return its first token."""
        require_one_identifier(req.email, req.phone_number, Service.DOG_OWNER)

        password_hash = self.hasher.hash(req.password, service=Service.DOG_OWNER)
        session_id = generate_session_id()

        if req.email is not None and self.credentials.count_dog_owner_email(req.email) > 0:
            self.logger.info("Dog owner signup rejected: email already registered")
            raise AlreadyRegistered("This email address is already registered.", service=Service.DOG_OWNER)
        if req.phone_number is not None and self.credentials.count_dog_owner_phone(req.phone_number) > 0:
            self.logger.info("Dog owner signup rejected: phone number already registered")
            raise AlreadyRegistered("This phone number is already registered.", service=Service.DOG_OWNER)

        dog_owner_id, _, _ = self.coordinator.run_atomically(
            [
                lambda conn, _: self.accounts.create_dog_owner(conn, req.name),
                lambda conn, owner_id: self.accounts.create_auth_dog_owner(conn, owner_id, session_id),
                lambda conn, link_id: self.accounts.create_dog_owner_credential(
                    conn, link_id, password_hash, email=req.email, phone_number=req.phone_number
                ),
            ],
            service=Service.DOG_OWNER,
        )

        self.logger.info("Dog owner %d registered", dog_owner_id)
        return self.issuer.issue(dog_owner_id, session_id, AccountKind.DOG_OWNER.role())


class OrganizationProvisioning(_Provisioning):
    def contract(self, req: OrganizationContract) -> str:
        """Create an organization with its admin manager and return the admin's token.

        The admin logs in with the organization's contact email.
        """
        password_hash = self.hasher.hash(req.password, service=Service.ORG)
        session_id = generate_session_id()

        if self.credentials.count_organization_email(req.contact_email) > 0:
            self.logger.info("Organization contract rejected: contact email already used")
            raise AlreadyRegistered("This contact email is already registered.", service=Service.ORG)
        if self.credentials.count_dogrun_manager_email(req.contact_email) > 0:
            self.logger.info("Organization contract rejected: manager email already registered")
            raise AlreadyRegistered("This email address is already registered.", service=Service.ORG)

        org_id, manager_id, _, _ = self.coordinator.run_atomically(
            [
                lambda conn, _: self.accounts.create_organization(conn, req),
                lambda conn, new_org_id: self.accounts.create_dogrun_manager(
                    conn, new_org_id, ADMIN_MANAGER_NAME, is_admin=True
                ),
                lambda conn, new_manager_id: self.accounts.create_auth_dogrun_manager(
                    conn, new_manager_id, session_id
                ),
                lambda conn, link_id: self.accounts.create_dogrun_manager_credential(
                    conn, link_id, password_hash, req.contact_email
                ),
            ],
            service=Service.ORG,
        )

        self.logger.info("Organization %d contracted with admin manager %d", org_id, manager_id)
        return self.issuer.issue(manager_id, session_id, AccountKind.DOGRUN_MANAGER.role(is_admin=True))


class DogrunManagerProvisioning(_Provisioning):
    def sign_up(self, admin_account_id: int, req: DogrunManagerSignUp) -> str:
        """Add a regular manager to the calling admin's organization.

        Returns a token for the new manager, not for the admin.
        """
        admin = self.accounts.get_dogrun_manager(admin_account_id)
        if admin is None:
            raise AccountNotFound("Organization admin not found.", service=Service.DOGRUN_MANAGER)
        if not admin.is_admin:
            raise Forbidden(service=Service.DOGRUN_MANAGER)

        password_hash = self.hasher.hash(req.password, service=Service.DOGRUN_MANAGER)
        session_id = generate_session_id()

        if self.credentials.count_dogrun_manager_email(req.email) > 0:
            self.logger.info("Dogrun manager signup rejected: email already registered")
            raise AlreadyRegistered("This email address is already registered.", service=Service.DOGRUN_MANAGER)

        manager_id, _, _ = self.coordinator.run_atomically(
            [
                lambda conn, _: self.accounts.create_dogrun_manager(conn, admin.organization_id, req.name),
                lambda conn, new_manager_id: self.accounts.create_auth_dogrun_manager(
                    conn, new_manager_id, session_id
                ),
                lambda conn, link_id: self.accounts.create_dogrun_manager_credential(
                    conn, link_id, password_hash, req.email
                ),
            ],
            service=Service.DOGRUN_MANAGER,
        )

        self.logger.info("Dogrun manager %d added to organization %d", manager_id, admin.organization_id)
        return self.issuer.issue(manager_id, session_id, AccountKind.DOGRUN_MANAGER.role())
