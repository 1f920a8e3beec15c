"""Project service layer."""

from dealflow.domain.access_policy import OwnershipDescriptor, Visibility
from dealflow.errors import NotFoundError
from dealflow.repositories.memory import InMemoryStore, ProjectRecord
from dealflow.schemas.auth import AuthPrincipal
from dealflow.schemas.project import Project, UpdateProjectRequest
from dealflow.services.access_control import AccessDecisionEngine


class ProjectService:
    def __init__(self, store: InMemoryStore, engine: AccessDecisionEngine) -> None:
        self._store = store
        self._engine = engine

    def create_project(self, *, owner_id: str, name: str, visibility: Visibility) -> Project:
        return self._to_project(self._store.create_project(owner_id=owner_id, name=name, visibility=visibility))

    def list_projects(self, *, principal: AuthPrincipal) -> list[Project]:
        return [
            self._to_project(record)
            for record in self._store.list_projects()
            if self._engine.can_read(principal, OwnershipDescriptor(owner_id=record.owner_id, visibility=record.visibility))
        ]

    def get_project(self, *, project_id: str) -> Project:
        record = self._store.get_project(project_id)
        if record is None:
            raise NotFoundError()
        return self._to_project(record)

    def update_project(self, *, project_id: str, payload: UpdateProjectRequest) -> Project:
        changes = payload.model_dump(exclude_none=True)
        record = self._store.update_project(project_id, **changes) if changes else self._store.get_project(project_id)
        if record is None:
            raise NotFoundError()
        return self._to_project(record)

    @staticmethod
    def _to_project(record: ProjectRecord) -> Project:
        return Project(
            id=record.id,
            name=record.name,
            visibility=record.visibility,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
