"""Token lifecycle service: registration, login, refresh, logout and reset."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import logging
import time

from dealflow.adapters.identity import (
    DelegateUnavailableError,
    EmailAlreadyRegisteredError,
    IdentityDelegate,
    IdentityDelegateError,
    InvalidCredentialError,
)
from dealflow.core.config import Settings
from dealflow.core.logging_safety import safe_log_email, safe_log_identifier
from dealflow.core.tokens import ClaimSet, TokenCodec, TokenError, TokenType
from dealflow.domain.session_fsm import SessionState, ensure_session_transition
from dealflow.errors import (
    AccountInactiveError,
    AuthUnavailableError,
    ConflictError,
    DuplicateEmailError,
    InvalidOrExpiredTokenError,
    LoginFailedError,
    NotFoundError,
    ReconciliationTimeoutError,
    RefreshMismatchError,
    RegistrationFailedError,
    RegistrationRejectedError,
)
from dealflow.repositories.memory import (
    DuplicateRecordError,
    InMemoryStore,
    PrincipalRecord,
    normalize_email,
)
from dealflow.schemas.auth import PrincipalProfile, Role, TokenPair

logger = logging.getLogger(__name__)

PASSWORD_RESET_MESSAGE = "If this email is registered, a password reset link has been sent."
REGISTRATION_MESSAGE = "Registration successful. Please check your email."
LOGOUT_MESSAGE = "Logged out successfully."


@dataclass(frozen=True, slots=True)
class ReconciliationPolicy:
    """Bounded wait for the provider trigger to create the local principal."""

    timeout_seconds: float = 3.0
    initial_backoff_seconds: float = 0.05
    max_backoff_seconds: float = 0.5
    # Whole-request budget for register; the wait never runs past what is left of it.
    request_budget_seconds: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> ReconciliationPolicy:
        return cls(
            timeout_seconds=settings.reconciliation_timeout_seconds,
            initial_backoff_seconds=settings.reconciliation_initial_backoff_seconds,
            max_backoff_seconds=settings.reconciliation_max_backoff_seconds,
            request_budget_seconds=settings.registration_deadline_seconds,
        )


def to_profile(record: PrincipalRecord) -> PrincipalProfile:
    return PrincipalProfile(
        id=record.id,
        email=record.email,
        name=record.name,
        profile_photo_url=record.profile_photo_url,
        role=record.role,
        is_active=record.is_active,
        created_at=record.created_at,
        last_login_at=record.last_login_at,
    )


class AuthService:
    """The only component that mints or invalidates tokens."""

    def __init__(
        self,
        store: InMemoryStore,
        delegate: IdentityDelegate,
        codec: TokenCodec,
        *,
        access_token_ttl: timedelta = timedelta(minutes=15),
        refresh_token_ttl: timedelta = timedelta(days=7),
        reconciliation: ReconciliationPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._delegate = delegate
        self._codec = codec
        self._access_token_ttl = access_token_ttl
        self._refresh_token_ttl = refresh_token_ttl
        self._reconciliation = reconciliation or ReconciliationPolicy()
        self._sleep = sleep
        self._monotonic = monotonic

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: InMemoryStore,
        delegate: IdentityDelegate,
        codec: TokenCodec,
    ) -> AuthService:
        return cls(
            store,
            delegate,
            codec,
            access_token_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
            refresh_token_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
            reconciliation=ReconciliationPolicy.from_settings(settings),
        )

    def register(
        self,
        *,
        email: str,
        password: str,
        name: str | None = None,
        role: Role | None = None,
    ) -> tuple[PrincipalRecord, TokenPair]:
        started = self._monotonic()
        email = normalize_email(email)
        safe_email = safe_log_email(email)

        # Fast path only; the provider decides uniqueness authoritatively.
        if self._store.find_principal_by_email(email) is not None:
            logger.info("auth.register_rejected email=%s reason=duplicate_email", safe_email)
            raise DuplicateEmailError()

        ensure_session_transition(SessionState.ANONYMOUS, SessionState.REGISTERING)
        try:
            identity = self._delegate.create_credential(email, password)
        except EmailAlreadyRegisteredError as exc:
            logger.info("auth.register_rejected email=%s reason=delegate_duplicate", safe_email)
            raise DuplicateEmailError() from exc
        except InvalidCredentialError as exc:
            logger.info("auth.register_rejected email=%s reason=invalid_credential detail=%s", safe_email, exc)
            raise RegistrationRejectedError() from exc
        except IdentityDelegateError as exc:
            logger.error(
                "auth.register_failed email=%s reason=%s detail=%s",
                safe_email,
                type(exc).__name__,
                exc,
            )
            raise RegistrationFailedError(reason=_delegate_reason(exc)) from exc

        principal = self._await_local_principal(identity.delegate_id, safe_email=safe_email, started=started)

        overrides: dict[str, object] = {}
        if name:
            overrides["name"] = name
        if role is not None:
            overrides["role"] = role
        if overrides:
            updated = self._store.update_principal(principal.id, **overrides)
            principal = updated or principal

        ensure_session_transition(principal.session_state, SessionState.ACTIVE)
        tokens, principal = self._issue_tokens(principal, session_state=SessionState.ACTIVE)
        logger.info(
            "auth.registered principal_id=%s email=%s role=%s",
            safe_log_identifier(principal.id, prefix="pid"),
            safe_email,
            principal.role.value,
        )
        return principal, tokens

    def login(self, *, email: str, password: str) -> tuple[PrincipalRecord, TokenPair]:
        email = normalize_email(email)
        safe_email = safe_log_email(email)

        try:
            identity = self._delegate.verify_credential(email, password)
        except InvalidCredentialError as exc:
            logger.info("auth.login_rejected email=%s reason=invalid_credential", safe_email)
            raise LoginFailedError() from exc
        except DelegateUnavailableError as exc:
            logger.error("auth.login_failed email=%s reason=delegate_unavailable detail=%s", safe_email, exc)
            raise AuthUnavailableError() from exc

        principal = self._store.find_principal_by_delegate_id(identity.delegate_id)
        if principal is None:
            logger.warning("auth.login_rejected email=%s reason=principal_missing", safe_email)
            raise LoginFailedError(reason="principal_missing")
        if not principal.is_active:
            logger.info(
                "auth.login_rejected principal_id=%s reason=account_inactive",
                safe_log_identifier(principal.id, prefix="pid"),
            )
            raise AccountInactiveError(LoginFailedError.default_message)

        ensure_session_transition(principal.session_state, SessionState.ACTIVE)
        tokens, principal = self._issue_tokens(
            principal,
            session_state=SessionState.ACTIVE,
            last_login_at=datetime.now(UTC),
        )
        logger.info("auth.logged_in principal_id=%s", safe_log_identifier(principal.id, prefix="pid"))
        return principal, tokens

    def refresh(self, refresh_token: str) -> TokenPair:
        try:
            claims = self._codec.decode(refresh_token, expected_type=TokenType.REFRESH)
        except TokenError as exc:
            logger.info("auth.refresh_rejected reason=%s", type(exc).__name__)
            raise InvalidOrExpiredTokenError() from exc

        safe_principal_id = safe_log_identifier(claims.subject, prefix="pid")
        principal = self._store.find_principal_by_id(claims.subject)
        if principal is None:
            logger.info("auth.refresh_rejected principal_id=%s reason=principal_missing", safe_principal_id)
            raise InvalidOrExpiredTokenError(reason="principal_missing")
        if not principal.is_active:
            logger.info("auth.refresh_rejected principal_id=%s reason=account_inactive", safe_principal_id)
            raise AccountInactiveError()
        if principal.refresh_token != refresh_token:
            logger.warning("auth.refresh_rejected principal_id=%s reason=refresh_mismatch", safe_principal_id)
            raise RefreshMismatchError()

        ensure_session_transition(principal.session_state, SessionState.REFRESH_PENDING)
        ensure_session_transition(SessionState.REFRESH_PENDING, SessionState.ACTIVE)
        tokens, _ = self._issue_tokens(
            principal,
            session_state=SessionState.ACTIVE,
            expected_refresh_token=refresh_token,
        )
        logger.info("auth.refreshed principal_id=%s", safe_principal_id)
        return tokens

    def logout(self, principal_id: str) -> str:
        principal = self._store.find_principal_by_id(principal_id)
        if principal is None:
            raise NotFoundError()

        ensure_session_transition(principal.session_state, SessionState.LOGGED_OUT)
        self._store.update_principal(principal_id, refresh_token=None, session_state=SessionState.LOGGED_OUT)
        logger.info("auth.logged_out principal_id=%s", safe_log_identifier(principal_id, prefix="pid"))
        return LOGOUT_MESSAGE

    def reset_password(self, email: str) -> str:
        email = normalize_email(email)
        safe_email = safe_log_email(email)

        principal = self._store.find_principal_by_email(email)
        if principal is None:
            logger.info("auth.reset_skipped email=%s reason=unknown_email", safe_email)
            return PASSWORD_RESET_MESSAGE

        try:
            self._delegate.dispatch_password_reset(email)
        except IdentityDelegateError as exc:
            logger.error("auth.reset_failed email=%s reason=%s detail=%s", safe_email, type(exc).__name__, exc)
            return PASSWORD_RESET_MESSAGE

        logger.info("auth.reset_dispatched email=%s", safe_email)
        return PASSWORD_RESET_MESSAGE

    def get_profile(self, principal_id: str) -> PrincipalRecord:
        principal = self._store.find_principal_by_id(principal_id)
        if principal is None:
            raise NotFoundError()
        return principal

    def update_profile(
        self,
        principal_id: str,
        *,
        name: str | None = None,
        profile_photo_url: str | None = None,
    ) -> PrincipalRecord:
        changes = {
            field: value
            for field, value in (("name", name), ("profile_photo_url", profile_photo_url))
            if value is not None
        }
        if not changes:
            return self.get_profile(principal_id)
        principal = self._store.update_principal(principal_id, **changes)
        if principal is None:
            raise NotFoundError()
        return principal

    def set_active(self, principal_id: str, *, is_active: bool) -> PrincipalRecord:
        changes: dict[str, object] = {"is_active": is_active}
        if not is_active:
            # Outstanding refresh tokens stop validating immediately.
            changes["refresh_token"] = None
        principal = self._store.update_principal(principal_id, **changes)
        if principal is None:
            raise NotFoundError()
        logger.info(
            "auth.status_changed principal_id=%s is_active=%s",
            safe_log_identifier(principal_id, prefix="pid"),
            is_active,
        )
        return principal

    def provision(self, *, delegate_id: str, email: str, name: str | None = None) -> tuple[PrincipalRecord, bool]:
        try:
            principal, created = self._store.provision_principal(delegate_id, email, name)
        except DuplicateRecordError as exc:
            logger.warning(
                "auth.provision_rejected delegate_id=%s email=%s reason=duplicate",
                safe_log_identifier(delegate_id, prefix="did"),
                safe_log_email(email),
            )
            raise ConflictError() from exc
        logger.info(
            "auth.provisioned principal_id=%s created=%s",
            safe_log_identifier(principal.id, prefix="pid"),
            created,
        )
        return principal, created

    def _await_local_principal(self, delegate_id: str, *, safe_email: str, started: float) -> PrincipalRecord:
        policy = self._reconciliation
        deadline = self._monotonic() + policy.timeout_seconds
        if policy.request_budget_seconds is not None:
            deadline = min(deadline, started + policy.request_budget_seconds)
        backoff = policy.initial_backoff_seconds
        attempts = 0

        while True:
            attempts += 1
            principal = self._store.find_principal_by_delegate_id(delegate_id)
            if principal is not None:
                if attempts > 1:
                    logger.info("auth.reconciled email=%s attempts=%s", safe_email, attempts)
                return principal

            remaining = deadline - self._monotonic()
            if remaining <= 0:
                logger.error(
                    "auth.reconciliation_timeout email=%s delegate_id=%s attempts=%s timeout_seconds=%s",
                    safe_email,
                    safe_log_identifier(delegate_id, prefix="did"),
                    attempts,
                    policy.timeout_seconds,
                )
                raise ReconciliationTimeoutError()

            self._sleep(min(backoff, remaining))
            backoff = min(backoff * 2, policy.max_backoff_seconds)

    def _issue_tokens(
        self,
        principal: PrincipalRecord,
        *,
        session_state: SessionState,
        expected_refresh_token: str | None = None,
        last_login_at: datetime | None = None,
    ) -> tuple[TokenPair, PrincipalRecord]:
        claims = ClaimSet(subject=principal.id, email=principal.email, role=principal.role.value)
        access_token = self._codec.encode(claims, token_type=TokenType.ACCESS, ttl=self._access_token_ttl)
        refresh_token = self._codec.encode(claims, token_type=TokenType.REFRESH, ttl=self._refresh_token_ttl)

        changes: dict[str, object] = {"session_state": session_state}
        if last_login_at is not None:
            changes["last_login_at"] = last_login_at

        if expected_refresh_token is None:
            updated = self._store.update_principal(principal.id, refresh_token=refresh_token, **changes)
            if updated is None:
                raise NotFoundError()
        else:
            swapped = self._store.compare_and_set_refresh_token(
                principal.id,
                expected=expected_refresh_token,
                new=refresh_token,
                **changes,
            )
            if not swapped:
                logger.warning(
                    "auth.refresh_rejected principal_id=%s reason=concurrent_rotation",
                    safe_log_identifier(principal.id, prefix="pid"),
                )
                raise RefreshMismatchError(reason="concurrent_rotation")
            updated = self._store.find_principal_by_id(principal.id) or principal

        return TokenPair(access_token=access_token, refresh_token=refresh_token), updated


def _delegate_reason(exc: IdentityDelegateError) -> str:
    if isinstance(exc, DelegateUnavailableError):
        return "delegate_unavailable"
    return "delegate_error"


__all__ = [
    "AuthService",
    "LOGOUT_MESSAGE",
    "PASSWORD_RESET_MESSAGE",
    "REGISTRATION_MESSAGE",
    "ReconciliationPolicy",
    "to_profile",
]
