"""Mock identity delegate for local development and tests."""

from __future__ import annotations

from collections.abc import Callable
import hashlib
import logging
from secrets import compare_digest
import threading
from uuid import uuid4

from dealflow.adapters.identity.base import (
    DelegateUnavailableError,
    EmailAlreadyRegisteredError,
    IdentityDelegate,
    IdentityRecord,
    InvalidCredentialError,
)
from dealflow.core.logging_safety import safe_log_email, safe_log_identifier

logger = logging.getLogger(__name__)

ProvisionHook = Callable[[str, str], object]


def _password_digest(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class MockIdentityDelegate(IdentityDelegate):
    """Keeps credentials in memory.

    ``on_credential_created`` stands in for the provider-side trigger that
    materializes the local principal. With a positive ``provision_delay_seconds``
    the hook fires on a timer thread, reproducing the gap between sign-up and
    local record creation. Setting ``unavailable_message`` makes every call
    fail as a transport error.
    """

    def __init__(
        self,
        *,
        on_credential_created: ProvisionHook | None = None,
        provision_delay_seconds: float = 0.0,
    ) -> None:
        self._credentials: dict[str, tuple[str, str]] = {}
        self._lock = threading.Lock()
        self._on_credential_created = on_credential_created
        self._provision_delay_seconds = provision_delay_seconds
        self.unavailable_message: str | None = None
        self.reset_requests: list[str] = []

    def create_credential(self, email: str, password: str) -> IdentityRecord:
        self._raise_if_unavailable()
        key = email.strip().lower()
        with self._lock:
            if key in self._credentials:
                raise EmailAlreadyRegisteredError("Email already registered with identity provider")
            delegate_id = f"mock-{uuid4().hex}"
            self._credentials[key] = (delegate_id, _password_digest(password))

        self._fire_provision_hook(delegate_id, key)
        return IdentityRecord(delegate_id=delegate_id, email=key)

    def verify_credential(self, email: str, password: str) -> IdentityRecord:
        self._raise_if_unavailable()
        key = email.strip().lower()
        with self._lock:
            entry = self._credentials.get(key)
        if entry is None:
            raise InvalidCredentialError("Unknown email")

        delegate_id, digest = entry
        if not compare_digest(digest, _password_digest(password)):
            raise InvalidCredentialError("Password mismatch")
        return IdentityRecord(delegate_id=delegate_id, email=key)

    def dispatch_password_reset(self, email: str) -> None:
        self._raise_if_unavailable()
        self.reset_requests.append(email.strip().lower())

    def _raise_if_unavailable(self) -> None:
        if self.unavailable_message is not None:
            raise DelegateUnavailableError(self.unavailable_message)

    def _fire_provision_hook(self, delegate_id: str, email: str) -> None:
        if self._on_credential_created is None:
            return
        if self._provision_delay_seconds <= 0:
            self._on_credential_created(delegate_id, email)
            return

        timer = threading.Timer(self._provision_delay_seconds, self._run_delayed_hook, args=(delegate_id, email))
        timer.daemon = True
        timer.start()

    def _run_delayed_hook(self, delegate_id: str, email: str) -> None:
        # Timer threads have no caller to propagate to.
        try:
            self._on_credential_created(delegate_id, email)
        except Exception:
            logger.exception(
                "identity.provision_hook_failed delegate_id=%s email=%s",
                safe_log_identifier(delegate_id, prefix="did"),
                safe_log_email(email),
            )


__all__ = ["MockIdentityDelegate"]
