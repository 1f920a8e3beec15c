"""Principal profile routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from dealflow.domain.access_policy import AccessMode, RoutePolicy
from dealflow.routes.dependencies import (
    ResourceRule,
    access_guard,
    get_auth_service,
    principal_ownership_lookup,
)
from dealflow.schemas.auth import (
    AuthPrincipal,
    PrincipalProfile,
    Role,
    UpdatePrincipalStatusRequest,
    UpdateProfileRequest,
)
from dealflow.schemas.error import ErrorResponse
from dealflow.services.auth import AuthService, to_profile

router = APIRouter(prefix="/users", tags=["Users"])

_authenticated = access_guard(RoutePolicy())
_admin_only = access_guard(RoutePolicy.for_roles(Role.ADMIN))
_read_principal = access_guard(
    RoutePolicy(),
    resource=ResourceRule(path_param="userId", mode=AccessMode.READ, lookup=principal_ownership_lookup),
)


@router.get(
    "/me",
    response_model=PrincipalProfile,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_me(
    principal: Annotated[AuthPrincipal, Depends(_authenticated)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> PrincipalProfile:
    return to_profile(service.get_profile(principal.user_id))


@router.patch(
    "/me",
    response_model=PrincipalProfile,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_me(
    payload: UpdateProfileRequest,
    principal: Annotated[AuthPrincipal, Depends(_authenticated)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> PrincipalProfile:
    profile_photo_url = str(payload.profile_photo_url) if payload.profile_photo_url is not None else None
    return to_profile(
        service.update_profile(principal.user_id, name=payload.name, profile_photo_url=profile_photo_url)
    )


@router.get(
    "/{userId}",
    response_model=PrincipalProfile,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_user(
    user_id: Annotated[str, Path(alias="userId")],
    _: Annotated[AuthPrincipal, Depends(_read_principal)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> PrincipalProfile:
    return to_profile(service.get_profile(user_id))


@router.patch(
    "/{userId}/status",
    response_model=PrincipalProfile,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_status(
    user_id: Annotated[str, Path(alias="userId")],
    payload: UpdatePrincipalStatusRequest,
    _: Annotated[AuthPrincipal, Depends(_admin_only)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> PrincipalProfile:
    return to_profile(service.set_active(user_id, is_active=payload.is_active))
