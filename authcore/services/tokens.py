"""Session token codec: signed, expiring JWTs carrying a subject claim."""

import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt.exceptions import InvalidSignatureError, PyJWTError

from authcore.services.errors import MalformedTokenError, SignatureInvalidError, TokenExpiredError

Clock = Callable[[], datetime]

_REQUIRED_CLAIMS = ["sub", "exp", "iat"]


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class SessionToken:
    """An issued session token and the claims it was signed with."""

    value: str
    subject: str
    issued_at: datetime
    expires_at: datetime
    token_id: str


@dataclass(frozen=True)
class TokenClaims:
    """Claims recovered from a verified session token."""

    subject: str
    issued_at: datetime
    expires_at: datetime
    token_id: str | None = None


class TokenCodec:
    """Creates and parses signed session tokens.

    The signing key is fixed at construction and never changes for the
    life of the codec. Building a codec with a different key invalidates
    every token issued under the old one.
    """

    def __init__(
        self,
        secret_key: str,
        default_ttl: timedelta,
        algorithm: str = "HS256",
        clock: Clock = utcnow,
    ):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        if default_ttl <= timedelta(0):
            raise ValueError("default_ttl must be positive")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._default_ttl = default_ttl
        self._clock = clock

    @property
    def default_ttl(self) -> timedelta:
        return self._default_ttl

    def issue(self, subject: str, ttl: timedelta | None = None) -> SessionToken:
        """Sign a new token for subject valid for ttl (default: configured TTL)."""
        if not subject:
            raise ValueError("subject must not be empty")
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")

        # JWT timestamps have whole-second resolution
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + ttl
        token_id = secrets.token_hex(16)
        payload = {
            "sub": subject,
            "iat": issued_at,
            "exp": expires_at,
            "jti": token_id,
        }
        value = jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
        return SessionToken(
            value=str(value),
            subject=subject,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=token_id,
        )

    def parse(self, token_value: str) -> TokenClaims:
        """Verify signature, then expiry, and return the token's claims."""
        claims = self._decode(token_value)
        if claims.expires_at <= self._clock():
            raise TokenExpiredError("Token has expired")
        return claims

    def read_expiry(self, token_value: str) -> datetime:
        """Return the expiry of a correctly signed token, expired or not."""
        return self._decode(token_value).expires_at

    def _decode(self, token_value: str) -> TokenClaims:
        # Expiry is checked against the injected clock rather than by PyJWT
        try:
            payload: dict[str, Any] = jwt.decode(
                token_value,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": _REQUIRED_CLAIMS, "verify_exp": False, "verify_iat": False},
            )
        except InvalidSignatureError as e:
            raise SignatureInvalidError("Token signature is invalid") from e
        except PyJWTError as e:
            raise MalformedTokenError(f"Malformed token: {e}") from e

        subject = payload["sub"]
        if not isinstance(subject, str) or not subject:
            raise MalformedTokenError("Token subject is missing")
        try:
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=UTC)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=UTC)
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedTokenError("Token timestamps are invalid") from e

        token_id = payload.get("jti")
        return TokenClaims(
            subject=subject,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=token_id if isinstance(token_id, str) else None,
        )
