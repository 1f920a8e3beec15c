"""Identity provider delegate adapters."""

from .base import (
    DelegateUnavailableError,
    EmailAlreadyRegisteredError,
    IdentityDelegate,
    IdentityDelegateError,
    IdentityRecord,
    InvalidCredentialError,
)
from .firebase_identity import FirebaseIdentityDelegate
from .mock_identity import MockIdentityDelegate

__all__ = [
    "DelegateUnavailableError",
    "EmailAlreadyRegisteredError",
    "FirebaseIdentityDelegate",
    "IdentityDelegate",
    "IdentityDelegateError",
    "IdentityRecord",
    "InvalidCredentialError",
    "MockIdentityDelegate",
]
