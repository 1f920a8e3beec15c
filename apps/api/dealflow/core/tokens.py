"""Signed bearer token encoding and verification.

Tokens are HMAC-signed JWTs produced with PyJWT. Encoding is a pure function
of the claims, the clock and the server secret; decoding verifies the
signature (PyJWT compares HMAC digests with ``hmac.compare_digest``), the
expiry and the token type.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4

import jwt

from dealflow.core.config import Settings

_MIN_SECRET_BYTES = 32
_REQUIRED_CLAIMS = ("sub", "email", "role", "typ", "iat", "exp", "jti")


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenError(Exception):
    """Raised when a token cannot be decoded into trusted claims."""


class ExpiredTokenError(TokenError):
    """Signature is valid but the expiry has elapsed."""


class MalformedTokenError(TokenError):
    """Signature, structure, claim set or token type is invalid."""


@dataclass(frozen=True, slots=True)
class ClaimSet:
    """Identity claims embedded in every issued token."""

    subject: str
    email: str
    role: str


@dataclass(frozen=True, slots=True)
class TokenClaims:
    subject: str
    email: str
    role: str
    token_type: TokenType
    token_id: str
    issued_at: datetime
    expires_at: datetime


class TokenCodec:
    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        issuer: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if len(secret.encode("utf-8")) < _MIN_SECRET_BYTES:
            raise ValueError(f"Token signing secret must be at least {_MIN_SECRET_BYTES} bytes")
        self._secret = secret
        self._algorithm = algorithm
        self._issuer = issuer
        self._clock = clock or (lambda: datetime.now(UTC))

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(settings.jwt_secret, algorithm=settings.jwt_algorithm, issuer=settings.jwt_issuer)

    def encode(self, claims: ClaimSet, *, token_type: TokenType, ttl: timedelta) -> str:
        issued_at = self._clock()
        payload: dict[str, Any] = {
            "sub": claims.subject,
            "email": claims.email,
            "role": claims.role,
            "typ": token_type.value,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + ttl).timestamp()),
            # Unique per token so rotations within one second never collide.
            "jti": uuid4().hex,
        }
        if self._issuer:
            payload["iss"] = self._issuer
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str, *, expected_type: TokenType | None = None) -> TokenClaims:
        if not token:
            raise MalformedTokenError("Token is empty")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                options={"require": list(_REQUIRED_CLAIMS)},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredTokenError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedTokenError("Token is invalid") from exc

        try:
            token_type = TokenType(payload["typ"])
        except ValueError as exc:
            raise MalformedTokenError("Token type is unknown") from exc
        if expected_type is not None and token_type is not expected_type:
            raise MalformedTokenError("Token type is not accepted here")

        subject = str(payload["sub"]).strip()
        if not subject:
            raise MalformedTokenError("Token subject is empty")

        return TokenClaims(
            subject=subject,
            email=str(payload["email"]),
            role=str(payload["role"]),
            token_type=token_type,
            token_id=str(payload["jti"]),
            issued_at=datetime.fromtimestamp(int(payload["iat"]), UTC),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), UTC),
        )


__all__ = [
    "ClaimSet",
    "ExpiredTokenError",
    "MalformedTokenError",
    "TokenClaims",
    "TokenCodec",
    "TokenError",
    "TokenType",
]
