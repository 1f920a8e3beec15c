"""Role and ownership rules shared by every protected resource."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from dealflow.schemas.auth import AuthPrincipal, Role


class Visibility(str, Enum):
    PUBLISHED = "published"
    UNPUBLISHED = "unpublished"


class AccessMode(str, Enum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True, slots=True)
class OwnershipDescriptor:
    """Owner and visibility of one business record, supplied by its collaborator."""

    owner_id: str
    visibility: Visibility


OwnershipLookup = Callable[[str], OwnershipDescriptor | None]


@dataclass(frozen=True, slots=True)
class RoutePolicy:
    """Access declaration attached to a single route."""

    public: bool = False
    roles: frozenset[Role] = frozenset()

    @classmethod
    def public_route(cls) -> RoutePolicy:
        return cls(public=True)

    @classmethod
    def for_roles(cls, *roles: Role) -> RoutePolicy:
        return cls(roles=frozenset(roles))


def role_allowed(role: Role, required_roles: frozenset[Role]) -> bool:
    """An empty requirement admits any authenticated role."""
    return not required_roles or role in required_roles


def resource_access_allowed(
    principal: AuthPrincipal,
    descriptor: OwnershipDescriptor,
    mode: AccessMode,
) -> bool:
    if principal.role is Role.ADMIN:
        return True
    if principal.role is Role.OWNER:
        return descriptor.owner_id == principal.user_id
    if principal.role is Role.REVIEWER:
        return mode is AccessMode.READ and descriptor.visibility is Visibility.PUBLISHED
    return False
