"""Internal callback routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from dealflow.routes.dependencies import get_auth_service, require_callback_secret
from dealflow.schemas.auth import PrincipalProfile
from dealflow.schemas.error import ErrorResponse
from dealflow.schemas.internal import ProvisionPrincipalRequest
from dealflow.services.auth import AuthService, to_profile

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.post(
    "/identity/principals",
    response_model=PrincipalProfile,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"model": PrincipalProfile, "description": "Principal already provisioned"},
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def provision_principal(
    payload: ProvisionPrincipalRequest,
    response: Response,
    __: Annotated[None, Depends(require_callback_secret)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> PrincipalProfile:
    principal, created = service.provision(delegate_id=payload.delegate_id, email=payload.email, name=payload.name)
    if not created:
        response.status_code = status.HTTP_200_OK
    return to_profile(principal)
