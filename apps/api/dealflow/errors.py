"""Application exception types.

Every subclass carries a fixed public message. The ``reason`` attribute names
the specific check that failed; it is meant for logs and tests only and is
never rendered into a response body.
"""

from typing import Any

from dealflow.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        reason: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.reason = reason or code.lower()
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


class _FixedApiError(ApiError):
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"
    default_message = "Internal server error"
    default_reason: str | None = None

    def __init__(self, message: str | None = None, *, reason: str | None = None) -> None:
        super().__init__(
            status_code=type(self).status_code,
            code=type(self).code,
            message=message or self.default_message,
            reason=reason or self.default_reason,
        )


class UnauthenticatedError(_FixedApiError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Invalid or missing token"
    default_reason = "unauthenticated"


class InvalidOrExpiredTokenError(UnauthenticatedError):
    default_message = "Invalid or expired token"
    default_reason = "invalid_or_expired_token"


class RefreshMismatchError(InvalidOrExpiredTokenError):
    default_reason = "refresh_mismatch"


class AccountInactiveError(InvalidOrExpiredTokenError):
    default_reason = "account_inactive"


class LoginFailedError(UnauthenticatedError):
    default_message = "Invalid email or password"
    default_reason = "invalid_credential"


class RegistrationRejectedError(_FixedApiError):
    status_code = 422
    code = "VALIDATION_ERROR"
    default_message = "Registration could not be completed"
    default_reason = "invalid_credential"


class ForbiddenError(_FixedApiError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Not permitted"
    default_reason = "forbidden"


class NotFoundError(_FixedApiError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"
    default_reason = "not_found"


class ConflictError(_FixedApiError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists"
    default_reason = "conflict"


class DuplicateEmailError(ConflictError):
    default_message = "Email is already registered"
    default_reason = "duplicate_email"


class ServiceUnavailableError(_FixedApiError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable"
    default_reason = "service_unavailable"


class RegistrationFailedError(ServiceUnavailableError):
    default_message = "Registration could not be completed"
    default_reason = "registration_failed"


class ReconciliationTimeoutError(RegistrationFailedError):
    default_reason = "reconciliation_timeout"


class AuthUnavailableError(ServiceUnavailableError):
    default_message = "Authentication is temporarily unavailable"
    default_reason = "delegate_unavailable"


__all__ = [
    "AccountInactiveError",
    "ApiError",
    "AuthUnavailableError",
    "ConflictError",
    "DuplicateEmailError",
    "ForbiddenError",
    "InvalidOrExpiredTokenError",
    "LoginFailedError",
    "NotFoundError",
    "ReconciliationTimeoutError",
    "RefreshMismatchError",
    "RegistrationFailedError",
    "RegistrationRejectedError",
    "ServiceUnavailableError",
    "UnauthenticatedError",
]
