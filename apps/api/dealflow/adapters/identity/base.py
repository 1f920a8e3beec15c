"""Identity provider interfaces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class IdentityDelegateError(Exception):
    """Base error for failures reported by or about the identity provider."""


class DelegateUnavailableError(IdentityDelegateError):
    """Raised when the provider cannot be reached or answers with a server fault."""


class InvalidCredentialError(IdentityDelegateError):
    """Raised when the provider rejects the presented credential."""


class EmailAlreadyRegisteredError(IdentityDelegateError):
    """Raised when sign-up targets an email the provider already knows."""


@dataclass(frozen=True, slots=True)
class IdentityRecord:
    delegate_id: str
    email: str


class IdentityDelegate(ABC):
    """Provider-neutral credential operations.

    Each call is one blocking round trip to the provider.
    """

    @abstractmethod
    def create_credential(self, email: str, password: str) -> IdentityRecord:
        """Create a credential and return the provider identity."""

    @abstractmethod
    def verify_credential(self, email: str, password: str) -> IdentityRecord:
        """Verify a credential and return the provider identity."""

    @abstractmethod
    def dispatch_password_reset(self, email: str) -> None:
        """Ask the provider to send a password-reset message."""


__all__ = [
    "DelegateUnavailableError",
    "EmailAlreadyRegisteredError",
    "IdentityDelegate",
    "IdentityDelegateError",
    "IdentityRecord",
    "InvalidCredentialError",
]
