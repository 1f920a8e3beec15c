"""FastAPI application entrypoint.

Serve with ``uvicorn --factory dealflow.main:create_app``.
"""

from __future__ import annotations

from datetime import UTC, datetime
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dealflow.adapters.identity import FirebaseIdentityDelegate, IdentityDelegate, MockIdentityDelegate
from dealflow.core.config import Settings, get_settings
from dealflow.core.logging import configure_logging
from dealflow.core.tokens import TokenCodec
from dealflow.errors import ApiError
from dealflow.repositories.memory import InMemoryStore
from dealflow.routes import auth_router, internal_router, projects_router, users_router
from dealflow.schemas.error import ErrorResponse
from dealflow.services.access_control import AccessDecisionEngine
from dealflow.services.auth import AuthService

logger = logging.getLogger(__name__)


def _build_identity_delegate(settings: Settings, store: InMemoryStore) -> IdentityDelegate:
    """Resolve provider adapter from configuration."""
    if settings.identity_provider == "firebase":
        return FirebaseIdentityDelegate(settings)

    def provision(delegate_id: str, email: str) -> None:
        store.provision_principal(delegate_id, email)

    return MockIdentityDelegate(
        on_credential_created=provision,
        provision_delay_seconds=settings.mock_provision_delay_seconds,
    )


def _validation_issue(error: dict) -> dict:
    return {
        "loc": [str(part) for part in error.get("loc", ())],
        "msg": str(error.get("msg", "")),
        "type": str(error.get("type", "")),
    }


def _error_content(payload: ErrorResponse, request: Request) -> dict:
    stamped = payload.model_copy(update={"timestamp": datetime.now(UTC), "path": request.url.path})
    return stamped.model_dump(mode="json", exclude_none=True)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Dealflow API", version="1.0.0")
    store = InMemoryStore()
    codec = TokenCodec.from_settings(settings)
    delegate = _build_identity_delegate(settings, store)

    app.state.settings = settings
    app.state.store = store
    app.state.token_codec = codec
    app.state.identity_delegate = delegate
    app.state.access_engine = AccessDecisionEngine(codec)
    app.state.auth_service = AuthService.from_settings(settings, store=store, delegate=delegate, codec=codec)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url.rstrip("/")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_content(exc.payload, request))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        payload = ErrorResponse(
            code="VALIDATION_ERROR",
            message="Invalid request payload",
            details={"errors": [_validation_issue(error) for error in exc.errors()]},
        )
        return JSONResponse(status_code=422, content=_error_content(payload, request))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "request.failed method=%s path=%s error=%s",
            request.method,
            request.url.path,
            type(exc).__name__,
            exc_info=exc,
        )
        payload = ErrorResponse(code="INTERNAL_SERVER_ERROR", message="Internal server error")
        return JSONResponse(status_code=500, content=_error_content(payload, request))

    api_prefix = "/api/v1"
    app.include_router(auth_router, prefix=api_prefix)
    app.include_router(users_router, prefix=api_prefix)
    app.include_router(projects_router, prefix=api_prefix)
    app.include_router(internal_router, prefix=api_prefix)

    logger.info("app.started identity_provider=%s", settings.identity_provider)
    return app

