"""
API request and response models for the dogrun-auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in accounts/models.py and
auth/models.py, which own the internal representation. Route handlers map
between the two.

Wire keys are camelCase (dogOwnerName, phoneNumber, accessToken); Python
attributes stay snake_case through aliases. Either spelling is accepted on
input. Blank optional strings are treated as absent, so {"email": ""} means
"no email" rather than an empty identifier.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints

# bcrypt reads at most 72 bytes of UTF-8; longer passwords are rejected here
# rather than silently truncated.
PASSWORD_MAX_BYTES = 72


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _within_bcrypt_limit(value: str) -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"password must be at most {PASSWORD_MAX_BYTES} bytes in UTF-8")
    return value


# Identifier or display text; surrounding whitespace is dropped.
_Text = Annotated[str, StringConstraints(strip_whitespace=True)]

# Optional identifier where "" (or only whitespace) counts as absent.
_OptionalStr = Annotated[Optional[str], BeforeValidator(_blank_to_none)]

# Passwords are kept exactly as sent; whitespace is part of the secret.
_Password = Annotated[str, StringConstraints(min_length=1), AfterValidator(_within_bcrypt_limit)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DogOwnerLoginRequest(_Request):
    """Request body for POST /auth/dogowner/token. Exactly one of email / phoneNumber."""

    password: _Password
    email: _OptionalStr = Field(default=None, max_length=256)
    phone_number: _OptionalStr = Field(default=None, max_length=15, alias="phoneNumber")


class DogrunManagerLoginRequest(_Request):
    """Request body for POST /auth/dogrunmg/token."""

    password: _Password
    email: _Text = Field(min_length=1, max_length=256)


class DogOwnerSignUpRequest(_Request):
    """Request body for POST /dogowner/signUp. Exactly one of email / phoneNumber."""

    password: _Password
    dog_owner_name: _Text = Field(min_length=1, max_length=128, alias="dogOwnerName")
    email: _OptionalStr = Field(default=None, max_length=256)
    phone_number: _OptionalStr = Field(default=None, max_length=15, alias="phoneNumber")


class DogrunManagerSignUpRequest(_Request):
    """Request body for POST /dogrunmg/signUp (organization admin only)."""

    password: _Password
    dogrunmg_name: _Text = Field(min_length=1, max_length=128, alias="dogrunmgName")
    email: _Text = Field(min_length=1, max_length=256)


class OrganizationContractRequest(_Request):
    """Request body for POST /org/contract.

    contactEmail is both the organization's contact address and the login
    email of the admin manager created with it.
    """

    organization_name: _Text = Field(min_length=1, max_length=128, alias="organizationName")
    contact_email: _Text = Field(min_length=1, max_length=256, alias="contactEmail")
    password: _Password
    phone_number: _OptionalStr = Field(default=None, max_length=15, alias="phoneNumber")
    address: _OptionalStr = Field(default=None, max_length=256)
    description: _OptionalStr = Field(default=None, max_length=512)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Response for login and signup routes."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(alias="accessToken")


class MeResponse(BaseModel):
    """Response for GET /auth/me."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    account_id: int = Field(alias="accountId")
    account_kind: str = Field(alias="accountKind")
    role: int


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses.

    trace carries the underlying cause and is only filled in debug mode.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    trace: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
