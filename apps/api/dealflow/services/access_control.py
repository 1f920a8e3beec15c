"""Authorization decision engine shared by every route."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from dealflow.core.logging_safety import safe_log_identifier
from dealflow.core.tokens import TokenCodec, TokenError, TokenType
from dealflow.domain.access_policy import (
    AccessMode,
    OwnershipDescriptor,
    OwnershipLookup,
    RoutePolicy,
    resource_access_allowed,
    role_allowed,
)
from dealflow.errors import ForbiddenError, NotFoundError, UnauthenticatedError
from dealflow.schemas.auth import AuthPrincipal, Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResourceRequest:
    """The record a request targets plus the collaborator's ownership lookup."""

    resource_id: str
    mode: AccessMode
    lookup: OwnershipLookup


class AccessDecisionEngine:
    """Runs the guard chain in fixed order.

    1. public bypass
    2. authentication from the access token alone (no store round trip)
    3. role membership
    4. existence, then ownership/visibility

    A missing record always yields NotFound, whatever the role. An existing
    record that breaks a rule yields Forbidden.
    """

    def __init__(self, codec: TokenCodec) -> None:
        self._codec = codec

    def evaluate(
        self,
        policy: RoutePolicy,
        *,
        token: str | None,
        resource: ResourceRequest | None = None,
    ) -> AuthPrincipal | None:
        if policy.public:
            return None

        principal = self.authenticate(token)
        self.check_role(principal, policy.roles)
        if resource is not None:
            self.check_resource(principal, resource.lookup(resource.resource_id), resource.mode)
        return principal

    def authenticate(self, token: str | None) -> AuthPrincipal:
        if not token:
            raise UnauthenticatedError(reason="missing_token")

        try:
            claims = self._codec.decode(token, expected_type=TokenType.ACCESS)
        except TokenError as exc:
            raise UnauthenticatedError(reason=type(exc).__name__) from exc

        try:
            role = Role(claims.role)
        except ValueError as exc:
            raise UnauthenticatedError(reason="unknown_role") from exc

        return AuthPrincipal(user_id=claims.subject, email=claims.email, role=role)

    @staticmethod
    def check_role(principal: AuthPrincipal, required_roles: frozenset[Role]) -> None:
        if not role_allowed(principal.role, required_roles):
            logger.info(
                "authz.denied principal_id=%s role=%s reason=role_mismatch",
                safe_log_identifier(principal.user_id, prefix="pid"),
                principal.role.value,
            )
            raise ForbiddenError(reason="role_mismatch")

    @staticmethod
    def check_resource(
        principal: AuthPrincipal,
        descriptor: OwnershipDescriptor | None,
        mode: AccessMode,
    ) -> OwnershipDescriptor:
        if descriptor is None:
            raise NotFoundError()
        if not resource_access_allowed(principal, descriptor, mode):
            logger.info(
                "authz.denied principal_id=%s role=%s mode=%s reason=ownership_or_visibility",
                safe_log_identifier(principal.user_id, prefix="pid"),
                principal.role.value,
                mode.value,
            )
            raise ForbiddenError(reason="ownership_or_visibility")
        return descriptor

    @staticmethod
    def can_read(principal: AuthPrincipal, descriptor: OwnershipDescriptor) -> bool:
        return resource_access_allowed(principal, descriptor, AccessMode.READ)


__all__ = ["AccessDecisionEngine", "ResourceRequest"]
