"""Authentication routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from dealflow.domain.access_policy import RoutePolicy
from dealflow.routes.dependencies import access_guard, get_auth_service
from dealflow.schemas.auth import (
    AuthPrincipal,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetRequest,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    TokenPair,
)
from dealflow.schemas.error import ErrorResponse
from dealflow.services.auth import REGISTRATION_MESSAGE, AuthService, to_profile

router = APIRouter(prefix="/auth", tags=["Authentication"])

_public = access_guard(RoutePolicy.public_route())
_authenticated = access_guard(RoutePolicy())


# Blocking delegate calls: plain ``def`` handlers run in the threadpool.
@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(_public)],
    responses={409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def register(
    payload: RegisterRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> RegisterResponse:
    principal, tokens = service.register(
        email=payload.email,
        password=payload.password,
        name=payload.name,
        role=payload.role,
    )
    return RegisterResponse(
        user=to_profile(principal),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        message=REGISTRATION_MESSAGE,
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    dependencies=[Depends(_public)],
    responses={401: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def login(
    payload: LoginRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> LoginResponse:
    principal, tokens = service.login(email=payload.email, password=payload.password)
    return LoginResponse(
        user=to_profile(principal),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post(
    "/refresh",
    response_model=TokenPair,
    dependencies=[Depends(_public)],
    responses={401: {"model": ErrorResponse}},
)
def refresh(
    payload: RefreshRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> TokenPair:
    return service.refresh(payload.refresh_token)


@router.post(
    "/logout",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse}},
)
def logout(
    principal: Annotated[AuthPrincipal, Depends(_authenticated)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    return MessageResponse(message=service.logout(principal.user_id))


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(_public)],
)
def reset_password(
    payload: PasswordResetRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    return MessageResponse(message=service.reset_password(payload.email))
