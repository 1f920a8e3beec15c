"""API error response schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None
    timestamp: datetime | None = None
    path: str | None = None
