"""
api/routes/accounts.py -- Signup endpoints.

Routes:
  POST /dogowner/signUp  -- register a dog owner; public; 201 {accessToken}
  POST /dogrunmg/signUp  -- admin adds a manager to its organization
                            (DOGRUN_SUPER_MANAGE); 201 {accessToken} of the new manager
  POST /org/contract     -- new organization + admin manager; public; 201 {accessToken}

Every signup returns a token that is already valid: the account is created
with its first session id in the same transaction.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from accounts.models import DogOwnerSignUp, DogrunManagerSignUp, OrganizationContract
from accounts.provisioning import DogOwnerProvisioning, DogrunManagerProvisioning, OrganizationProvisioning
from api.models import DogOwnerSignUpRequest, DogrunManagerSignUpRequest, OrganizationContractRequest, TokenResponse
from api.routes.auth import token_response
from auth.dependencies import require_roles
from auth.guard import DOGRUN_SUPER_MANAGE
from auth.models import TokenClaims

# Auth policy:
# - POST /dogowner/signUp:  public
# - POST /org/contract:     public
# - POST /dogrunmg/signUp:  DOGRUN_SUPER_MANAGE
router = APIRouter()


@router.post("/dogowner/signUp", response_model=TokenResponse, status_code=201)
def dog_owner_sign_up(request: Request, body: DogOwnerSignUpRequest) -> JSONResponse:
    """Register a dog owner with exactly one of email or phone number."""
    service: DogOwnerProvisioning = request.app.state.dog_owner_provisioning
    token = service.sign_up(
        DogOwnerSignUp(
            password=body.password,
            name=body.dog_owner_name,
            email=body.email,
            phone_number=body.phone_number,
        )
    )
    return token_response(token, status_code=201)


@router.post("/dogrunmg/signUp", response_model=TokenResponse, status_code=201)
def dogrun_manager_sign_up(
    request: Request,
    body: DogrunManagerSignUpRequest,
    claims: TokenClaims = Depends(require_roles(DOGRUN_SUPER_MANAGE)),
) -> JSONResponse:
    service: DogrunManagerProvisioning = request.app.state.dogrun_manager_provisioning
    token = service.sign_up(
        claims.account_id,
        DogrunManagerSignUp(password=body.password, name=body.dogrunmg_name, email=body.email),
    )
    return token_response(token, status_code=201)


@router.post("/org/contract", response_model=TokenResponse, status_code=201)
def organization_contract(request: Request, body: OrganizationContractRequest) -> JSONResponse:
    """Create an organization and its admin manager; returns the admin's token."""
    service: OrganizationProvisioning = request.app.state.organization_provisioning
    token = service.contract(
        OrganizationContract(
            organization_name=body.organization_name,
            contact_email=body.contact_email,
            password=body.password,
            phone_number=body.phone_number,
            address=body.address,
            description=body.description,
        )
    )
    return token_response(token, status_code=201)
