"""Firebase Authentication identity delegate."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from dealflow.adapters.identity.base import (
    DelegateUnavailableError,
    EmailAlreadyRegisteredError,
    IdentityDelegate,
    IdentityRecord,
    InvalidCredentialError,
)
from dealflow.core.config import Settings
from dealflow.core.logging_safety import safe_log_email

logger = logging.getLogger(__name__)

_FIREBASE_APP_NAME = "dealflow-identity"
_CREDENTIAL_REJECTION_CODES = frozenset(
    {
        "EMAIL_NOT_FOUND",
        "INVALID_PASSWORD",
        "INVALID_LOGIN_CREDENTIALS",
        "INVALID_EMAIL",
        "USER_DISABLED",
        "MISSING_PASSWORD",
    }
)


class FirebaseIdentityDelegate(IdentityDelegate):
    """Creates users through the Admin SDK and verifies them through Identity Toolkit.

    The Admin SDK authenticates with the service-account credential and has
    no password sign-in, so verification and reset dispatch go through the
    Identity Toolkit REST API keyed by ``identity_api_key``.
    """

    def __init__(self, settings: Settings, *, http_client: httpx.Client | None = None) -> None:
        self._base_url = settings.identity_base_url.rstrip("/")
        self._api_key = settings.identity_api_key
        self._project_id = settings.firebase_project_id
        self._credentials_path = settings.firebase_credentials_path
        self._timeout = settings.identity_timeout_seconds
        self._reset_redirect_url = f"{settings.frontend_url.rstrip('/')}/reset-password"
        self._http = http_client or httpx.Client(timeout=self._timeout)

    def create_credential(self, email: str, password: str) -> IdentityRecord:
        try:
            import firebase_admin
            from firebase_admin import auth as firebase_auth
            from firebase_admin import exceptions as firebase_exceptions
            from google.auth import exceptions as google_auth_exceptions
        except ImportError as exc:  # pragma: no cover - depends on installed SDK
            raise DelegateUnavailableError("Firebase Admin SDK is unavailable") from exc

        try:
            app = self._firebase_app(firebase_admin)
        except (OSError, ValueError, google_auth_exceptions.GoogleAuthError) as exc:
            logger.error("identity.sdk_init_failed error=%s detail=%s", type(exc).__name__, exc)
            raise DelegateUnavailableError("Identity provider SDK could not be initialised") from exc

        try:
            user = firebase_auth.create_user(email=email, password=password, app=app)
        except firebase_auth.EmailAlreadyExistsError as exc:
            raise EmailAlreadyRegisteredError("Email already registered with identity provider") from exc
        except ValueError as exc:
            raise InvalidCredentialError(str(exc)) from exc
        except firebase_exceptions.InvalidArgumentError as exc:
            raise InvalidCredentialError(str(exc)) from exc
        except firebase_exceptions.FirebaseError as exc:
            raise DelegateUnavailableError("Identity provider sign-up failed") from exc

        return IdentityRecord(delegate_id=user.uid, email=user.email or email)

    def verify_credential(self, email: str, password: str) -> IdentityRecord:
        payload = self._post(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
            email=email,
        )
        delegate_id = str(payload.get("localId") or "").strip()
        if not delegate_id:
            raise DelegateUnavailableError("Identity provider response missing user identity")
        return IdentityRecord(delegate_id=delegate_id, email=str(payload.get("email") or email))

    def dispatch_password_reset(self, email: str) -> None:
        self._post(
            "accounts:sendOobCode",
            {"requestType": "PASSWORD_RESET", "email": email, "continueUrl": self._reset_redirect_url},
            email=email,
        )

    def _post(self, method: str, body: dict[str, Any], *, email: str) -> dict[str, Any]:
        if not self._api_key:
            raise DelegateUnavailableError("Identity provider API key is not configured")

        url = f"{self._base_url}/{method}"
        try:
            response = self._http.post(url, params={"key": self._api_key}, json=body, timeout=self._timeout)
        except httpx.HTTPError as exc:
            logger.warning(
                "identity.transport_failed method=%s email=%s error=%s",
                method,
                safe_log_email(email),
                type(exc).__name__,
            )
            raise DelegateUnavailableError("Identity provider is unreachable") from exc

        if response.status_code >= 500:
            logger.warning("identity.provider_fault method=%s status=%s", method, response.status_code)
            raise DelegateUnavailableError("Identity provider returned a server error")

        payload = self._json(response)
        if response.status_code >= 400:
            error_code = self._error_code(payload)
            logger.info(
                "identity.rejected method=%s email=%s status=%s error_code=%s",
                method,
                safe_log_email(email),
                response.status_code,
                error_code,
            )
            if error_code in _CREDENTIAL_REJECTION_CODES or response.status_code in (400, 401, 403):
                raise InvalidCredentialError(error_code or "Credential rejected")
            raise DelegateUnavailableError("Identity provider rejected the request")
        return payload

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    @staticmethod
    def _error_code(payload: dict[str, Any]) -> str:
        error = payload.get("error")
        if not isinstance(error, dict):
            return ""
        # Identity Toolkit appends detail after " : " (e.g. "WEAK_PASSWORD : ...").
        return str(error.get("message") or "").split(" : ", 1)[0].strip()

    def _firebase_app(self, firebase_admin: Any) -> Any:
        try:
            return firebase_admin.get_app(_FIREBASE_APP_NAME)
        except ValueError:
            pass

        from firebase_admin import credentials

        credential = (
            credentials.Certificate(self._credentials_path)
            if self._credentials_path
            else credentials.ApplicationDefault()
        )
        options: dict[str, Any] = {"httpTimeout": self._timeout}
        if self._project_id:
            options["projectId"] = self._project_id
        return firebase_admin.initialize_app(credential, options, name=_FIREBASE_APP_NAME)


__all__ = ["FirebaseIdentityDelegate"]
