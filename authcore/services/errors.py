"""Authentication error hierarchy.

Components raise the precise subclasses. AuthService logs the precise
cause and re-raises one of the coarse boundary errors at the bottom of
this module, so callers never learn which check failed.
"""


class AuthError(Exception):
    """Base authentication error."""

    pass


# --- Credentials ---


class CredentialError(AuthError):
    """Credential verification failed."""

    pass


class InvalidCredentialsError(CredentialError):
    """Invalid username or password."""

    pass


class AccountNotVerifiedError(CredentialError):
    """Password was correct but the email address is not yet confirmed."""

    pass


# --- Session tokens ---


class TokenError(AuthError):
    """Session token error."""

    pass


class MalformedTokenError(TokenError):
    """Token cannot be decoded or lacks required claims."""

    pass


class SignatureInvalidError(TokenError):
    """Token signature does not match the signing key."""

    pass


class TokenExpiredError(TokenError):
    """Token has expired."""

    pass


class BlacklistedError(AuthError):
    """Token was revoked before its natural expiry."""

    pass


# --- Verification tokens ---


class VerificationError(AuthError):
    """Verification token could not be consumed."""

    pass


class VerificationNotFoundError(VerificationError):
    pass


class VerificationAlreadyConsumedError(VerificationError):
    pass


class VerificationExpiredError(VerificationError):
    pass


# --- Registration ---


class RegistrationError(AuthError):
    """Account could not be created."""

    pass


class EmailTakenError(RegistrationError):
    pass


class UsernameTakenError(RegistrationError):
    pass


# --- Boundary outcomes ---


class UnauthorizedError(AuthError):
    """Generic authentication failure surfaced to callers."""

    pass


class VerificationFailedError(AuthError):
    """Generic verification failure surfaced to callers."""

    pass
