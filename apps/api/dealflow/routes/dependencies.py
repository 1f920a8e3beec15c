"""Dependency wiring for routes."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging
from secrets import compare_digest
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from dealflow.core.config import Settings
from dealflow.core.logging_safety import safe_log_identifier
from dealflow.domain.access_policy import AccessMode, OwnershipLookup, RoutePolicy
from dealflow.errors import ApiError, UnauthenticatedError
from dealflow.repositories.memory import InMemoryStore
from dealflow.schemas.auth import AuthPrincipal
from dealflow.services.access_control import AccessDecisionEngine, ResourceRequest
from dealflow.services.auth import AuthService
from dealflow.services.projects import ProjectService

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
callback_secret_scheme = APIKeyHeader(
    name="X-Callback-Secret",
    auto_error=False,
    scheme_name="internalCallbackSecret",
)
logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResourceRule:
    """Ties a path parameter to the collaborator that knows who owns it."""

    path_param: str
    mode: AccessMode
    lookup: Callable[[Request], OwnershipLookup]


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_access_engine(request: Request) -> AccessDecisionEngine:
    return request.app.state.access_engine


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_project_service(
    store: Annotated[InMemoryStore, Depends(get_store)],
    engine: Annotated[AccessDecisionEngine, Depends(get_access_engine)],
) -> ProjectService:
    return ProjectService(store, engine)


def project_ownership_lookup(request: Request) -> OwnershipLookup:
    return request.app.state.store.get_project_ownership


def principal_ownership_lookup(request: Request) -> OwnershipLookup:
    return request.app.state.store.get_principal_ownership


def _bearer_token(credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        return None
    return credentials.credentials


def access_guard(
    policy: RoutePolicy,
    *,
    resource: ResourceRule | None = None,
) -> Callable[..., Awaitable[AuthPrincipal | None]]:
    """Build the per-route guard dependency.

    Public routes resolve to ``None``; every other route resolves to the
    authenticated principal, which is also attached to ``request.state``.
    """

    async def guard(
        request: Request,
        credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
        engine: Annotated[AccessDecisionEngine, Depends(get_access_engine)],
    ) -> AuthPrincipal | None:
        if policy.public:
            return None

        correlation_id = _request_correlation_id(request)
        safe_correlation_id = safe_log_identifier(correlation_id, prefix="cid")
        resource_request = None
        if resource is not None:
            resource_request = ResourceRequest(
                resource_id=str(request.path_params.get(resource.path_param, "")),
                mode=resource.mode,
                lookup=resource.lookup(request),
            )

        try:
            principal = engine.evaluate(policy, token=_bearer_token(credentials), resource=resource_request)
        except ApiError as exc:
            log = logger.warning if isinstance(exc, UnauthenticatedError) else logger.info
            log(
                "access.rejected correlation_id=%s method=%s path=%s status=%s reason=%s",
                safe_correlation_id,
                request.method,
                request.url.path,
                exc.status_code,
                exc.reason,
            )
            raise

        logger.info(
            "access.accepted correlation_id=%s method=%s path=%s principal_id=%s role=%s",
            safe_correlation_id,
            request.method,
            request.url.path,
            safe_log_identifier(principal.user_id, prefix="pid"),
            principal.role.value,
        )
        request.state.auth_principal = principal
        return principal

    return guard


async def require_callback_secret(
    request: Request,
    callback_secret: Annotated[str | None, Security(callback_secret_scheme)],
    settings: Annotated[Settings, Depends(get_settings_from_app)],
) -> None:
    """Validate callback secret for internal endpoints."""
    correlation_id = _request_correlation_id(request)
    safe_correlation_id = safe_log_identifier(correlation_id, prefix="cid")
    # compare_digest rejects non-ASCII str; header values may carry any latin-1 character.
    presented = (callback_secret or "").encode("utf-8")
    if not callback_secret or not compare_digest(presented, settings.callback_secret.encode("utf-8")):
        logger.warning(
            "callback.auth_rejected correlation_id=%s method=%s path=%s reason=invalid_callback_secret",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise UnauthenticatedError("Invalid callback authentication", reason="invalid_callback_secret")
