"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded once from environment variables.

    Instances are frozen; the application factory builds the token codec and
    identity delegate from a single instance and never mutates it afterwards.
    """

    identity_provider: Literal["mock", "firebase"] = "firebase"

    jwt_secret: str = Field(min_length=32)
    jwt_algorithm: Literal["HS256", "HS384", "HS512"] = "HS256"
    jwt_issuer: str | None = "dealflow-api"
    access_token_ttl_seconds: int = Field(default=15 * 60, gt=0)
    refresh_token_ttl_seconds: int = Field(default=7 * 24 * 60 * 60, gt=0)

    identity_base_url: str = "https://identitytoolkit.googleapis.com/v1"
    identity_api_key: str | None = None
    firebase_project_id: str | None = None
    firebase_credentials_path: str | None = None
    identity_timeout_seconds: float = Field(default=5.0, gt=0)
    frontend_url: str = "http://localhost:3001"

    reconciliation_timeout_seconds: float = Field(default=3.0, gt=0)
    reconciliation_initial_backoff_seconds: float = Field(default=0.05, gt=0)
    reconciliation_max_backoff_seconds: float = Field(default=0.5, gt=0)
    registration_deadline_seconds: float = Field(default=8.0, gt=0)
    mock_provision_delay_seconds: float = Field(default=0.0, ge=0)

    callback_secret: str
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="DEALFLOW_", extra="ignore", frozen=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
