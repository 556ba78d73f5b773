"""
tests/test_login.py -- LoginService and RevokeService against SQLite.

Coverage:
  - login rotates the session: the previous token stops validating
  - revoke invalidates the current token; revoking twice is harmless
  - unknown identifier and wrong password are both 401 client errors with the
    same message; unknown identifiers still run bcrypt
  - more than one matching credential is a server-side DataInconsistency
  - dog owner phone login, identifier XOR on login, manager email-only login
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from accounts.models import DogOwnerSignUp, OrganizationContract
from auth.models import AccountKind, CredentialRecord, Role
from core.errors import (
    AuthenticationFailed,
    CredentialNotFound,
    DataInconsistency,
    ErrorKind,
    InvalidIdentifier,
    SessionRevoked,
)


@pytest.fixture()
def owner(services) -> str:
    """Register a dog owner with email a@x.com; return the signup token."""
    return services.dog_owner.sign_up(DogOwnerSignUp(password="Secr3t!", name="Coco", email="a@x.com"))


class TestLogin:
    def test_login_rotates_session(self, services, owner) -> None:
        t1 = services.login.login(AccountKind.DOG_OWNER, "Secr3t!", email="a@x.com")
        t2 = services.login.login(AccountKind.DOG_OWNER, "Secr3t!", email="a@x.com")

        with pytest.raises(SessionRevoked):
            services.validator.validate(f"Bearer {t1}")
        with pytest.raises(SessionRevoked):
            services.validator.validate(f"Bearer {owner}")
        assert services.validator.validate(f"Bearer {t2}").role is Role.DOGOWNER

    def test_phone_login(self, services) -> None:
        services.dog_owner.sign_up(DogOwnerSignUp(password="Secr3t!", name="Coco", phone_number="09012345678"))
        token = services.login.login(AccountKind.DOG_OWNER, "Secr3t!", phone_number="09012345678")
        assert services.validator.validate(f"Bearer {token}").account_kind is AccountKind.DOG_OWNER

    def test_wrong_password_is_client_error(self, services, owner) -> None:
        with pytest.raises(AuthenticationFailed) as exc_info:
            services.login.login(AccountKind.DOG_OWNER, "wrong", email="a@x.com")
        err = exc_info.value
        assert err.kind is ErrorKind.CLIENT
        assert err.status_code == 401
        assert err.message == "Invalid credentials."

    def test_wrong_password_keeps_existing_session(self, services, owner) -> None:
        with pytest.raises(AuthenticationFailed):
            services.login.login(AccountKind.DOG_OWNER, "wrong", email="a@x.com")
        services.validator.validate(f"Bearer {owner}")

    def test_unknown_identifier_same_message(self, services, owner) -> None:
        with pytest.raises(CredentialNotFound) as exc_info:
            services.login.login(AccountKind.DOG_OWNER, "Secr3t!", email="nobody@x.com")
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Invalid credentials."

    def test_unknown_identifier_still_runs_bcrypt(self, services) -> None:
        with patch.object(services.hasher, "verify", wraps=services.hasher.verify) as spy:
            with pytest.raises(CredentialNotFound):
                services.login.login(AccountKind.DOG_OWNER, "Secr3t!", email="nobody@x.com")
        assert spy.call_count == 1

    def test_multiple_matches_is_data_inconsistency(self, services, monkeypatch) -> None:
        records = [CredentialRecord(1, 1, "x"), CredentialRecord(2, 2, "y")]
        monkeypatch.setattr(services.credentials, "find_password_credentials", lambda *a, **kw: records)

        with pytest.raises(DataInconsistency) as exc_info:
            services.login.login(AccountKind.DOG_OWNER, "Secr3t!", email="a@x.com")
        assert exc_info.value.kind is ErrorKind.SERVER
        assert exc_info.value.code == "1-2"

    @pytest.mark.parametrize(
        "email,phone",
        [(None, None), ("a@x.com", "09012345678")],
        ids=["neither", "both"],
    )
    def test_dog_owner_identifier_xor(self, services, email, phone) -> None:
        with pytest.raises(InvalidIdentifier):
            services.login.login(AccountKind.DOG_OWNER, "Secr3t!", email=email, phone_number=phone)

    def test_manager_login_requires_email(self, services) -> None:
        with pytest.raises(InvalidIdentifier):
            services.login.login(AccountKind.DOGRUN_MANAGER, "Secr3t!", phone_number="09012345678")

    def test_manager_and_owner_credentials_are_separate(self, services, owner) -> None:
        with pytest.raises(CredentialNotFound):
            services.login.login(AccountKind.DOGRUN_MANAGER, "Secr3t!", email="a@x.com")

    def test_admin_manager_gets_admin_role(self, services) -> None:
        services.organization.contract(
            OrganizationContract(organization_name="Happy Paws", contact_email="org@x.com", password="0rgPass!")
        )
        token = services.login.login(AccountKind.DOGRUN_MANAGER, "0rgPass!", email="org@x.com")
        assert services.validator.validate(f"Bearer {token}").role is Role.DOGRUNMG_ADMIN


class TestRevoke:
    def test_revoke_invalidates_token(self, services, owner) -> None:
        claims = services.validator.validate(f"Bearer {owner}")

        services.revoke.revoke(claims.account_id, AccountKind.DOG_OWNER)

        with pytest.raises(SessionRevoked):
            services.validator.validate(f"Bearer {owner}")

    def test_revoke_is_idempotent(self, services, owner) -> None:
        account_id = services.validator.validate(f"Bearer {owner}").account_id
        services.revoke.revoke(account_id, AccountKind.DOG_OWNER)
        services.revoke.revoke(account_id, AccountKind.DOG_OWNER)
        assert services.sessions.current_session_id(account_id, AccountKind.DOG_OWNER) is None

    def test_login_after_revoke_works(self, services, owner) -> None:
        account_id = services.validator.validate(f"Bearer {owner}").account_id
        services.revoke.revoke(account_id, AccountKind.DOG_OWNER)

        token = services.login.login(AccountKind.DOG_OWNER, "Secr3t!", email="a@x.com")
        assert services.validator.validate(f"Bearer {token}").account_id == account_id
