"""Project API schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from dealflow.domain.access_policy import Visibility


class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=1)
    visibility: Visibility = Visibility.UNPUBLISHED


class UpdateProjectRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    visibility: Visibility | None = None


class Project(BaseModel):
    id: str
    name: str
    visibility: Visibility
    created_at: datetime
    updated_at: datetime | None = None
