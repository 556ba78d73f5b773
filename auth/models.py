"""
auth/models.py -- Roles, account kinds, and authentication dataclasses.

Pattern: Data class (pure data container, minimal logic). Stores and services
do the work.

Role vs AccountKind:
  AccountKind says which tables hold the account (dog owner or dogrun
  manager). Role is the coarse capability carried in the token and checked
  by the guard. An admin dogrun manager and a regular one share an
  AccountKind but differ in Role.

Layer rule: no imports from api/ or accounts/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum


class AccountKind(str, Enum):
    DOG_OWNER = "dogowner"
    DOGRUN_MANAGER = "dogrunmg"

    def role(self, is_admin: bool = False) -> "Role":
        """Role a freshly authenticated account of this kind receives."""
        if self is AccountKind.DOG_OWNER:
            return Role.DOGOWNER
        return Role.DOGRUNMG_ADMIN if is_admin else Role.DOGRUNMG


class Role(IntEnum):
    """Integer role stored in the token `role` claim."""

    SYSTEM = 0
    DOGRUNMG = 1
    DOGRUNMG_ADMIN = 2
    DOGOWNER = 3
    GENERAL = 100

    @property
    def account_kind(self) -> AccountKind | None:
        """Table family holding accounts with this role, or None for roles with no account."""
        return _ROLE_KINDS.get(self)


_ROLE_KINDS = {
    Role.DOGOWNER: AccountKind.DOG_OWNER,
    Role.DOGRUNMG: AccountKind.DOGRUN_MANAGER,
    Role.DOGRUNMG_ADMIN: AccountKind.DOGRUN_MANAGER,
}


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an accepted bearer token.

    account_id is the domain identity id (dog_owner_id or dogrun_manager_id),
    carried as the `sub` claim.
    """

    account_id: int
    session_id: str
    role: Role
    expires_at: datetime

    @property
    def account_kind(self) -> AccountKind | None:
        return self.role.account_kind


@dataclass
class CredentialRecord:
    """A password-grant credential joined to the account it authenticates.

    password_hash is None only for federated credentials, which no flow
    creates today.
    """

    credential_id: int
    account_id: int
    password_hash: str | None
    is_admin: bool = False
