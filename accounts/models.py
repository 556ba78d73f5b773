"""
accounts/models.py -- Signup inputs and account dataclasses.

These are pure data containers with zero logic. Validation of the identifier
combination and the write order live in accounts/provisioning.py.

Passwords arrive here in plaintext straight from the API model and are hashed
before anything reaches accounts/store.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class DogOwnerSignUp:
    """Self-service dog owner registration.

    Exactly one of email / phone_number must be set.
    """

    password: str
    name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None


@dataclass
class DogrunManagerSignUp:
    """A dogrun manager added by an organization admin.

    The new manager joins the admin's organization and is never an admin.
    """

    password: str
    name: str
    email: str


@dataclass
class OrganizationContract:
    """A new organization plus its first (admin) dogrun manager.

    contact_email doubles as the admin manager's login email.
    """

    organization_name: str
    contact_email: str
    password: str
    phone_number: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None


@dataclass
class DogrunManager:
    id: int
    name: str
    is_admin: bool
    organization_id: int
    reg_at: str = ""  # ISO 8601
