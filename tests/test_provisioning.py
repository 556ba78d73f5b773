"""
tests/test_provisioning.py -- Signup services end to end against SQLite.

Coverage:
  - dog owner: email signup, phone signup, XOR violations write nothing,
    duplicate email / phone rejected without partial rows
  - organization: four-row aggregate, admin flag, admin role in token,
    duplicate contact email, forced failure of the last insert rolls back
    the organization, manager, auth link and credential
  - dogrun manager: joins the admin's organization, non-admin role,
    caller must be an existing admin
"""

from __future__ import annotations

import pytest
from jose import jwt
from sqlalchemy import select

from accounts.models import DogOwnerSignUp, DogrunManagerSignUp, OrganizationContract
from auth.models import AccountKind, Role
from core.database import dogrun_managers, organizations
from core.errors import AccountNotFound, AlreadyRegistered, Forbidden, InvalidIdentifier, StoreFailure

DOG_OWNER_TABLES = ("dog_owners", "auth_dog_owners", "dog_owner_credentials")
ORG_TABLES = ("organizations", "dogrun_managers", "auth_dogrun_managers", "dogrun_manager_credentials")


def _counts(row_count, tables) -> dict[str, int]:
    return {t: row_count(t) for t in tables}


def _contract(email: str = "org@x.com") -> OrganizationContract:
    return OrganizationContract(
        organization_name="Happy Paws",
        contact_email=email,
        password="0rgPass!",
        phone_number="0312345678",
        address="1-2-3 Shibuya",
    )


# ---------------------------------------------------------------------------
# Dog owner
# ---------------------------------------------------------------------------


class TestDogOwnerSignUp:
    def test_email_signup_returns_valid_token(self, services, row_count) -> None:
        token = services.dog_owner.sign_up(DogOwnerSignUp(password="Secr3t!", name="Coco", email="a@x.com"))

        claims = services.validator.validate(f"Bearer {token}")
        assert claims.role is Role.DOGOWNER
        assert _counts(row_count, DOG_OWNER_TABLES) == dict.fromkeys(DOG_OWNER_TABLES, 1)

    def test_phone_signup(self, services) -> None:
        token = services.dog_owner.sign_up(DogOwnerSignUp(password="Secr3t!", name="Coco", phone_number="09012345678"))
        assert jwt.get_unverified_claims(token)["role"] == int(Role.DOGOWNER)

    @pytest.mark.parametrize(
        "email,phone",
        [(None, None), ("a@x.com", "09012345678")],
        ids=["neither", "both"],
    )
    def test_identifier_xor_writes_nothing(self, services, row_count, email, phone) -> None:
        with pytest.raises(InvalidIdentifier) as exc_info:
            services.dog_owner.sign_up(DogOwnerSignUp(password="Secr3t!", name="Coco", email=email, phone_number=phone))

        assert exc_info.value.code == "3-1"
        assert _counts(row_count, DOG_OWNER_TABLES) == dict.fromkeys(DOG_OWNER_TABLES, 0)

    def test_duplicate_email(self, services, row_count) -> None:
        services.dog_owner.sign_up(DogOwnerSignUp(password="Secr3t!", name="Coco", email="a@x.com"))

        with pytest.raises(AlreadyRegistered) as exc_info:
            services.dog_owner.sign_up(DogOwnerSignUp(password="0ther!", name="Rex", email="a@x.com"))

        assert exc_info.value.status_code == 409
        assert _counts(row_count, DOG_OWNER_TABLES) == dict.fromkeys(DOG_OWNER_TABLES, 1)

    def test_duplicate_phone(self, services, row_count) -> None:
        services.dog_owner.sign_up(DogOwnerSignUp(password="Secr3t!", name="Coco", phone_number="09012345678"))

        with pytest.raises(AlreadyRegistered):
            services.dog_owner.sign_up(DogOwnerSignUp(password="0ther!", name="Rex", phone_number="09012345678"))
        assert row_count("dog_owners") == 1

    def test_phone_only_owners_do_not_collide_on_email(self, services, row_count) -> None:
        services.dog_owner.sign_up(DogOwnerSignUp(password="a", name="Coco", phone_number="09000000001"))
        services.dog_owner.sign_up(DogOwnerSignUp(password="b", name="Rex", phone_number="09000000002"))
        assert row_count("dog_owner_credentials") == 2


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------


class TestOrganizationContract:
    def test_creates_admin_manager(self, services, row_count) -> None:
        token = services.organization.contract(_contract())

        claims = services.validator.validate(f"Bearer {token}")
        assert claims.role is Role.DOGRUNMG_ADMIN
        assert _counts(row_count, ORG_TABLES) == dict.fromkeys(ORG_TABLES, 1)

        manager = services.accounts.get_dogrun_manager(claims.account_id)
        assert manager.is_admin is True
        assert manager.name == "admin"
        with services.engine.connect() as conn:
            org = conn.execute(select(organizations)).fetchone()
        assert manager.organization_id == org.organization_id
        assert org.contact_email == "org@x.com"

    def test_admin_logs_in_with_contact_email(self, services) -> None:
        services.organization.contract(_contract())

        token = services.login.login(AccountKind.DOGRUN_MANAGER, "0rgPass!", email="org@x.com")
        assert jwt.get_unverified_claims(token)["role"] == int(Role.DOGRUNMG_ADMIN)

    def test_duplicate_contact_email(self, services, row_count) -> None:
        services.organization.contract(_contract())

        with pytest.raises(AlreadyRegistered) as exc_info:
            services.organization.contract(_contract())

        assert exc_info.value.code == "6-1"
        assert _counts(row_count, ORG_TABLES) == dict.fromkeys(ORG_TABLES, 1)

    def test_failed_final_insert_rolls_back_everything(self, services, row_count, monkeypatch) -> None:
        # An existing manager credential holds the email; the duplicate checks
        # are blinded so the credential insert is the step that fails.
        services.organization.contract(_contract("taken@x.com"))
        before = _counts(row_count, ORG_TABLES)
        monkeypatch.setattr(services.credentials, "count_organization_email", lambda email: 0)
        monkeypatch.setattr(services.credentials, "count_dogrun_manager_email", lambda email: 0)

        contract = _contract("taken@x.com")
        contract.organization_name = "Second Org"
        with pytest.raises(StoreFailure) as exc_info:
            services.organization.contract(contract)

        assert exc_info.value.code == "6-2"
        assert _counts(row_count, ORG_TABLES) == before
        with services.engine.connect() as conn:
            names = conn.execute(select(organizations.c.organization_name)).scalars().all()
        assert names == ["Happy Paws"]


# ---------------------------------------------------------------------------
# Dogrun manager
# ---------------------------------------------------------------------------


class TestDogrunManagerSignUp:
    def _admin_id(self, services) -> int:
        token = services.organization.contract(_contract())
        return int(jwt.get_unverified_claims(token)["sub"])

    def test_joins_admin_organization(self, services) -> None:
        admin_id = self._admin_id(services)

        token = services.dogrun_manager.sign_up(
            admin_id, DogrunManagerSignUp(password="Mgr1pass", name="Taro", email="taro@x.com")
        )

        claims = services.validator.validate(f"Bearer {token}")
        assert claims.role is Role.DOGRUNMG
        assert claims.account_id != admin_id
        new_manager = services.accounts.get_dogrun_manager(claims.account_id)
        admin = services.accounts.get_dogrun_manager(admin_id)
        assert new_manager.organization_id == admin.organization_id
        assert new_manager.is_admin is False

    def test_admin_session_untouched(self, services) -> None:
        admin_token = services.organization.contract(_contract())
        admin_id = int(jwt.get_unverified_claims(admin_token)["sub"])

        services.dogrun_manager.sign_up(admin_id, DogrunManagerSignUp(password="p", name="Taro", email="t@x.com"))

        assert services.validator.validate(f"Bearer {admin_token}").account_id == admin_id

    def test_duplicate_email(self, services, row_count) -> None:
        admin_id = self._admin_id(services)
        with pytest.raises(AlreadyRegistered) as exc_info:
            services.dogrun_manager.sign_up(admin_id, DogrunManagerSignUp(password="p", name="Taro", email="org@x.com"))
        assert exc_info.value.code == "7-1"
        assert row_count("dogrun_managers") == 1

    def test_unknown_admin(self, services) -> None:
        with pytest.raises(AccountNotFound):
            services.dogrun_manager.sign_up(404, DogrunManagerSignUp(password="p", name="Taro", email="t@x.com"))

    def test_regular_manager_cannot_add_managers(self, services) -> None:
        admin_id = self._admin_id(services)
        token = services.dogrun_manager.sign_up(
            admin_id, DogrunManagerSignUp(password="p", name="Taro", email="t@x.com")
        )
        regular_id = int(jwt.get_unverified_claims(token)["sub"])

        with pytest.raises(Forbidden):
            services.dogrun_manager.sign_up(regular_id, DogrunManagerSignUp(password="p", name="Jiro", email="j@x.com"))
        with services.engine.connect() as conn:
            assert len(conn.execute(select(dogrun_managers)).fetchall()) == 2
