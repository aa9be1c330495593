"""Password hashing and credential verification."""

import logging
from dataclasses import dataclass

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from argon2.exceptions import VerificationError as HashVerificationError

from authcore.core import settings
from authcore.services.directory import UserDirectory
from authcore.services.errors import AccountNotVerifiedError, InvalidCredentialsError

logger = logging.getLogger(__name__)

# Argon2id hasher; cost parameters come from settings (defaults: 64 MiB, 3 iterations, 4 lanes)
ph = PasswordHasher(
    time_cost=settings.argon2_time_cost,
    memory_cost=settings.argon2_memory_cost,
    parallelism=settings.argon2_parallelism,
    hash_len=32,
    salt_len=16,
)

_INVALID_CREDENTIALS = "Invalid username or password"


def hash_password(password: str, hasher: PasswordHasher = ph) -> str:
    """Hash a password using Argon2id."""
    return hasher.hash(password)


def verify_password(password: str, password_hash: str, hasher: PasswordHasher = ph) -> bool:
    """Verify a password against its hash using constant-time comparison."""
    try:
        return hasher.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, HashVerificationError):
        logger.warning("Stored password hash could not be verified")
        return False


@dataclass(frozen=True)
class VerifiedCredentials:
    """Result of a successful password check."""

    identity: str
    # Set when the stored hash used outdated parameters and was recomputed
    upgraded_hash: str | None = None


class CredentialVerifier:
    """Checks a username/password pair against the user directory.

    A missing user and a wrong password take the same path: one Argon2
    verification and the same InvalidCredentialsError.
    """

    def __init__(
        self,
        directory: UserDirectory,
        hasher: PasswordHasher = ph,
        require_verified: bool = True,
    ):
        self._directory = directory
        self._hasher = hasher
        self._require_verified = require_verified
        self._dummy_hash = hasher.hash("authcore-dummy-password")

    async def verify(self, username: str, password: str) -> VerifiedCredentials:
        """Return the identity for valid credentials.

        Raises:
            InvalidCredentialsError: unknown user, wrong password, or inactive account
            AccountNotVerifiedError: correct password but unconfirmed email
        """
        user = await self._directory.find_by_username(username)

        if user is None:
            # Same cost as a real check to avoid a timing oracle
            verify_password(password, self._dummy_hash, self._hasher)
            raise InvalidCredentialsError(_INVALID_CREDENTIALS)

        if not verify_password(password, user.password_hash, self._hasher):
            raise InvalidCredentialsError(_INVALID_CREDENTIALS)

        if not user.is_active:
            raise InvalidCredentialsError(_INVALID_CREDENTIALS)

        if self._require_verified and not user.is_verified:
            raise AccountNotVerifiedError("Account email address is not verified")

        upgraded_hash = None
        if self._hasher.check_needs_rehash(user.password_hash):
            upgraded_hash = self._hasher.hash(password)

        return VerifiedCredentials(identity=user.username, upgraded_hash=upgraded_hash)
