"""Project routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status

from dealflow.domain.access_policy import AccessMode, RoutePolicy
from dealflow.routes.dependencies import (
    ResourceRule,
    access_guard,
    get_project_service,
    project_ownership_lookup,
)
from dealflow.schemas.auth import AuthPrincipal, Role
from dealflow.schemas.error import ErrorResponse
from dealflow.schemas.project import CreateProjectRequest, Project, UpdateProjectRequest
from dealflow.services.projects import ProjectService

router = APIRouter(prefix="/projects", tags=["Projects"])

_any_role = access_guard(RoutePolicy())
_owners_only = access_guard(RoutePolicy.for_roles(Role.OWNER))
_read_project = access_guard(
    RoutePolicy(),
    resource=ResourceRule(path_param="projectId", mode=AccessMode.READ, lookup=project_ownership_lookup),
)
_write_project = access_guard(
    RoutePolicy.for_roles(Role.OWNER, Role.ADMIN),
    resource=ResourceRule(path_param="projectId", mode=AccessMode.WRITE, lookup=project_ownership_lookup),
)


@router.post(
    "",
    response_model=Project,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def create_project(
    payload: CreateProjectRequest,
    principal: Annotated[AuthPrincipal, Depends(_owners_only)],
    service: Annotated[ProjectService, Depends(get_project_service)],
) -> Project:
    return service.create_project(owner_id=principal.user_id, name=payload.name, visibility=payload.visibility)


@router.get(
    "",
    response_model=list[Project],
    responses={401: {"model": ErrorResponse}},
)
async def list_projects(
    principal: Annotated[AuthPrincipal, Depends(_any_role)],
    service: Annotated[ProjectService, Depends(get_project_service)],
) -> list[Project]:
    return service.list_projects(principal=principal)


@router.get(
    "/{projectId}",
    response_model=Project,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_project(
    project_id: Annotated[str, Path(alias="projectId")],
    _: Annotated[AuthPrincipal, Depends(_read_project)],
    service: Annotated[ProjectService, Depends(get_project_service)],
) -> Project:
    return service.get_project(project_id=project_id)


@router.patch(
    "/{projectId}",
    response_model=Project,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_project(
    project_id: Annotated[str, Path(alias="projectId")],
    payload: UpdateProjectRequest,
    _: Annotated[AuthPrincipal, Depends(_write_project)],
    service: Annotated[ProjectService, Depends(get_project_service)],
) -> Project:
    return service.update_project(project_id=project_id, payload=payload)
