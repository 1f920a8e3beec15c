"""Authentication schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"


class Role(str, Enum):
    OWNER = "OWNER"
    REVIEWER = "REVIEWER"
    ADMIN = "ADMIN"


class AuthPrincipal(BaseModel):
    """Normalized authenticated principal used by business services.

    Built from verified access-token claims only; it is never re-read from the
    store during the guard chain.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    email: str
    role: Role = Role.OWNER


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=_EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=128)
    name: str | None = Field(default=None, min_length=1, max_length=200)
    role: Role | None = None

    @field_validator("role")
    @classmethod
    def _reject_admin(cls, value: Role | None) -> Role | None:
        if value is Role.ADMIN:
            raise ValueError("ADMIN role cannot be self-assigned")
        return value


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=_EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(alias="refreshToken", min_length=1)


class PasswordResetRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=_EMAIL_PATTERN)


class TokenPair(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


class PrincipalProfile(BaseModel):
    id: str
    email: str
    name: str | None = None
    profile_photo_url: str | None = None
    role: Role
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None = None


class LoginResponse(TokenPair):
    user: PrincipalProfile


class RegisterResponse(LoginResponse):
    message: str


class MessageResponse(BaseModel):
    message: str


class UpdateProfileRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    profile_photo_url: HttpUrl | None = None

    @model_validator(mode="after")
    def _require_change(self) -> "UpdateProfileRequest":
        if self.name is None and self.profile_photo_url is None:
            raise ValueError("At least one of name or profile_photo_url is required")
        return self


class UpdatePrincipalStatusRequest(BaseModel):
    is_active: bool
