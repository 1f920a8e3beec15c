"""In-memory repositories used by the API scaffold and tests."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
import threading
from typing import Any
from uuid import uuid4

from dealflow.domain.access_policy import OwnershipDescriptor, Visibility
from dealflow.domain.session_fsm import PERSISTED_STATES, SessionState
from dealflow.schemas.auth import Role

_PRINCIPAL_MUTABLE_FIELDS = frozenset(
    {"name", "profile_photo_url", "role", "is_active", "refresh_token", "session_state", "last_login_at"}
)
_PROJECT_MUTABLE_FIELDS = frozenset({"name", "visibility"})


class DuplicateRecordError(Exception):
    """Raised when a write would break a uniqueness constraint."""


@dataclass(slots=True)
class PrincipalRecord:
    id: str
    delegate_id: str
    email: str
    role: Role
    is_active: bool
    created_at: datetime
    updated_at: datetime
    name: str | None = None
    profile_photo_url: str | None = None
    refresh_token: str | None = None
    session_state: SessionState = SessionState.REGISTERING
    last_login_at: datetime | None = None


@dataclass(slots=True)
class ProjectRecord:
    id: str
    name: str
    owner_id: str
    visibility: Visibility
    created_at: datetime
    updated_at: datetime | None = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(slots=True)
class InMemoryStore:
    """Simple, deterministic persistence layer for scaffolding and tests.

    Every read returns a copy. Writes go through ``update_principal`` or
    ``compare_and_set_refresh_token`` under one lock, so a refresh-token swap
    is a single atomic step.
    """

    principals: dict[str, PrincipalRecord] = field(default_factory=dict)
    projects: dict[str, ProjectRecord] = field(default_factory=dict)
    principal_write_count: int = 0
    project_write_count: int = 0
    _principal_ids_by_email: dict[str, str] = field(default_factory=dict, repr=False)
    _principal_ids_by_delegate: dict[str, str] = field(default_factory=dict, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    # Principals

    def find_principal_by_id(self, principal_id: str) -> PrincipalRecord | None:
        with self._lock:
            return self._snapshot(self.principals.get(principal_id))

    def find_principal_by_email(self, email: str) -> PrincipalRecord | None:
        with self._lock:
            principal_id = self._principal_ids_by_email.get(normalize_email(email))
            return self._snapshot(self.principals.get(principal_id)) if principal_id else None

    def find_principal_by_delegate_id(self, delegate_id: str) -> PrincipalRecord | None:
        with self._lock:
            principal_id = self._principal_ids_by_delegate.get(delegate_id)
            return self._snapshot(self.principals.get(principal_id)) if principal_id else None

    def create_principal(
        self,
        *,
        delegate_id: str,
        email: str,
        name: str | None = None,
        role: Role = Role.OWNER,
        is_active: bool = True,
    ) -> PrincipalRecord:
        email = normalize_email(email)
        with self._lock:
            if email in self._principal_ids_by_email:
                raise DuplicateRecordError("principal email already exists")
            if delegate_id in self._principal_ids_by_delegate:
                raise DuplicateRecordError("principal delegate id already exists")

            now = datetime.now(UTC)
            principal = PrincipalRecord(
                id=str(uuid4()),
                delegate_id=delegate_id,
                email=email,
                name=name,
                role=role,
                is_active=is_active,
                created_at=now,
                updated_at=now,
            )
            self.principals[principal.id] = principal
            self._principal_ids_by_email[email] = principal.id
            self._principal_ids_by_delegate[delegate_id] = principal.id
            self.principal_write_count += 1
            return replace(principal)

    def provision_principal(
        self,
        delegate_id: str,
        email: str,
        name: str | None = None,
    ) -> tuple[PrincipalRecord, bool]:
        """Materialize the local record for a provider identity; replays return the existing record."""
        with self._lock:
            existing = self.find_principal_by_delegate_id(delegate_id)
            if existing is not None:
                return existing, False
            return self.create_principal(delegate_id=delegate_id, email=email, name=name), True

    def update_principal(self, principal_id: str, **changes: Any) -> PrincipalRecord | None:
        self._validate_principal_changes(changes)
        with self._lock:
            principal = self.principals.get(principal_id)
            if principal is None:
                return None
            self._apply_principal_changes(principal, changes)
            return replace(principal)

    def compare_and_set_refresh_token(
        self,
        principal_id: str,
        *,
        expected: str | None,
        new: str | None,
        **changes: Any,
    ) -> bool:
        """Store ``new`` only if the stored token still equals ``expected``."""
        self._validate_principal_changes(changes)
        with self._lock:
            principal = self.principals.get(principal_id)
            if principal is None or principal.refresh_token != expected:
                return False
            self._apply_principal_changes(principal, {**changes, "refresh_token": new})
            return True

    def _apply_principal_changes(self, principal: PrincipalRecord, changes: dict[str, Any]) -> None:
        for name, value in changes.items():
            setattr(principal, name, value)
        principal.updated_at = datetime.now(UTC)
        self.principal_write_count += 1

    @staticmethod
    def _validate_principal_changes(changes: dict[str, Any]) -> None:
        unknown = set(changes) - _PRINCIPAL_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported principal fields: {sorted(unknown)}")
        state = changes.get("session_state")
        if state is not None and state not in PERSISTED_STATES:
            raise ValueError(f"Session state {state} is not persisted")

    def get_principal_ownership(self, principal_id: str) -> OwnershipDescriptor | None:
        """A principal owns its own profile; profiles are visible to reviewers."""
        with self._lock:
            if principal_id not in self.principals:
                return None
            return OwnershipDescriptor(owner_id=principal_id, visibility=Visibility.PUBLISHED)

    @staticmethod
    def _snapshot(record: PrincipalRecord | None) -> PrincipalRecord | None:
        return replace(record) if record is not None else None

    # Projects

    def create_project(
        self,
        owner_id: str,
        name: str,
        visibility: Visibility = Visibility.UNPUBLISHED,
    ) -> ProjectRecord:
        now = datetime.now(UTC)
        project = ProjectRecord(
            id=str(uuid4()),
            name=name,
            owner_id=owner_id,
            visibility=visibility,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self.projects[project.id] = project
            self.project_write_count += 1
        return replace(project)

    def get_project(self, project_id: str) -> ProjectRecord | None:
        with self._lock:
            project = self.projects.get(project_id)
            return replace(project) if project is not None else None

    def list_projects(self) -> list[ProjectRecord]:
        with self._lock:
            projects = [replace(record) for record in self.projects.values()]
        projects.sort(key=lambda record: record.created_at)
        return projects

    def update_project(self, project_id: str, **changes: Any) -> ProjectRecord | None:
        unknown = set(changes) - _PROJECT_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported project fields: {sorted(unknown)}")
        with self._lock:
            project = self.projects.get(project_id)
            if project is None:
                return None
            for name, value in changes.items():
                setattr(project, name, value)
            project.updated_at = datetime.now(UTC)
            self.project_write_count += 1
            return replace(project)

    def get_project_ownership(self, project_id: str) -> OwnershipDescriptor | None:
        with self._lock:
            project = self.projects.get(project_id)
            if project is None:
                return None
            return OwnershipDescriptor(owner_id=project.owner_id, visibility=project.visibility)
