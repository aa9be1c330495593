"""Authentication service: login, logout, refresh and account verification."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authcore.core.config import Settings
from authcore.models.user import User
from authcore.services.blacklist import TokenBlacklist
from authcore.services.credentials import CredentialVerifier, hash_password
from authcore.services.directory import SqlUserDirectory, UserDirectory
from authcore.services.email import EmailSender, HttpEmailSender, LoggingEmailSender
from authcore.services.errors import (
    AccountNotVerifiedError,
    BlacklistedError,
    CredentialError,
    EmailTakenError,
    TokenError,
    UnauthorizedError,
    UsernameTakenError,
    VerificationError,
    VerificationFailedError,
)
from authcore.services.tokens import SessionToken, TokenClaims, TokenCodec, utcnow
from authcore.services.verification import VerificationTokenStore

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password."
INVALID_TOKEN_MESSAGE = "Invalid or expired token"
VERIFICATION_FAILED_MESSAGE = "Token verification failed or expired"


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an 'Authorization: Bearer <token>' header value."""
    if authorization and authorization.startswith(BEARER_PREFIX):
        token = authorization[len(BEARER_PREFIX) :].strip()
        return token or None
    return None


class AuthService:
    """Composes credential checks, session tokens, the blacklist and
    verification tokens into the authentication use cases.

    All collaborators are process-scoped and passed in; the service holds
    no state of its own apart from in-flight email tasks.

    Low-level failures are logged with their precise cause and re-raised as
    UnauthorizedError or VerificationFailedError so callers cannot tell
    which check failed.
    """

    def __init__(
        self,
        directory: UserDirectory,
        verifier: CredentialVerifier,
        codec: TokenCodec,
        blacklist: TokenBlacklist,
        verification_store: VerificationTokenStore,
        email_sender: EmailSender,
        revoke_on_refresh: bool = True,
    ):
        self.directory = directory
        self.verifier = verifier
        self.codec = codec
        self.blacklist = blacklist
        self.verification_store = verification_store
        self.email_sender = email_sender
        self.revoke_on_refresh = revoke_on_refresh
        self._email_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Signup and verification
    # ------------------------------------------------------------------

    async def signup(self, username: str, email: str, password: str) -> User:
        """Register an unverified account and email it a verification token."""
        if await self.directory.find_by_email(email) is not None:
            logger.warning(f"Registration failed. Email '{email}' is already taken.")
            raise EmailTakenError("Email is already taken")
        if await self.directory.find_by_username(username) is not None:
            logger.warning(f"Registration failed. Username '{username}' is already taken.")
            raise UsernameTakenError("Username is already taken")

        user = await self.directory.create_user(
            username=username,
            email=email,
            password_hash=hash_password(password),
        )
        verification = self.verification_store.issue(user.username)
        self._send_verification_email(user.email, verification.value)
        logger.info(f"User '{user.username}' registered; verification email queued.")
        return user

    async def confirm(self, token_value: str) -> None:
        """Consume a verification token and mark its account verified."""
        try:
            username = self.verification_store.consume(token_value)
        except VerificationError as e:
            logger.info(f"Verification rejected: {type(e).__name__}")
            raise VerificationFailedError(VERIFICATION_FAILED_MESSAGE) from e

        # The token is spent from here on; recovery is a resend
        try:
            marked = await self.directory.mark_verified(username)
        except Exception:
            logger.exception(
                f"Verification token consumed but '{username}' was not marked verified; "
                "a new token must be requested"
            )
            raise
        if not marked:
            logger.warning(f"Verification token consumed for missing user '{username}'")
            raise VerificationFailedError(VERIFICATION_FAILED_MESSAGE)
        logger.info(f"Account verified: {username}")

    async def resend_verification(self, email: str) -> None:
        """Issue a new token for an unverified account, revoking the previous one.

        Unknown or already verified addresses are ignored silently so the
        outcome does not reveal which emails are registered.
        """
        user = await self.directory.find_by_email(email)
        if user is None or user.is_verified:
            return
        verification = self.verification_store.issue(user.username)
        self._send_verification_email(user.email, verification.value)
        logger.info(f"Verification email re-sent for '{user.username}'")

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def login(self, username: str, password: str) -> SessionToken:
        """Check credentials and issue a session token."""
        try:
            result = await self.verifier.verify(username, password)
        except AccountNotVerifiedError as e:
            logger.warning(f"Login refused for unverified account: {username}")
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE) from e
        except CredentialError as e:
            logger.warning(f"Login failed for username: {username}")
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE) from e

        await self.directory.record_login(result.identity, password_hash=result.upgraded_hash)
        token = self.codec.issue(result.identity)
        logger.info(f"User '{result.identity}' logged in successfully.")
        return token

    def authenticate(self, authorization: str | None) -> TokenClaims:
        """Validate the bearer token of an incoming request.

        A token is accepted only if its signature is valid, it has not
        expired and it is not blacklisted.
        """
        token = self._require_bearer(authorization)
        try:
            claims = self.codec.parse(token)
            if self.blacklist.is_blacklisted(token):
                raise BlacklistedError("Token has been revoked")
        except (TokenError, BlacklistedError) as e:
            logger.info(f"Token rejected: {type(e).__name__}")
            raise UnauthorizedError(INVALID_TOKEN_MESSAGE) from e
        return claims

    def logout(self, authorization: str | None) -> None:
        """Blacklist the presented token for the rest of its lifetime.

        Only the signature is checked; a token that is close to or past
        expiry is still accepted for logout.
        """
        token = self._require_bearer(authorization)
        try:
            expires_at = self.codec.read_expiry(token)
        except TokenError as e:
            logger.info(f"Logout rejected: {type(e).__name__}")
            raise UnauthorizedError(INVALID_TOKEN_MESSAGE) from e

        if self.blacklist.add(token, expires_at):
            logger.info("Session token blacklisted on logout")

    def refresh(self, authorization: str | None) -> SessionToken:
        """Issue a new session token for the subject of a still-valid token.

        With revoke_on_refresh the presented token is blacklisted in the
        same step, so each token can be exchanged at most once.
        """
        token = self._require_bearer(authorization)
        try:
            if self.blacklist.is_blacklisted(token):
                raise BlacklistedError("Token has been revoked")
            claims = self.codec.parse(token)
            # add() is atomic: of two concurrent refreshes only one wins
            if self.revoke_on_refresh and not self.blacklist.add(token, claims.expires_at):
                raise BlacklistedError("Token was already refreshed")
        except (TokenError, BlacklistedError) as e:
            logger.info(f"Refresh rejected: {type(e).__name__}")
            raise UnauthorizedError(INVALID_TOKEN_MESSAGE) from e

        return self.codec.issue(claims.subject)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired(self, now: datetime | None = None, batch_size: int = 500) -> dict[str, int]:
        """Evict expired blacklist entries and verification tokens."""
        return {
            "blacklist": self.blacklist.purge_expired(now, batch_size=batch_size),
            "verification_tokens": self.verification_store.purge_expired(
                now, batch_size=batch_size
            ),
        }

    async def wait_for_pending_emails(self) -> None:
        """Wait for queued verification emails (used on shutdown and in tests)."""
        if self._email_tasks:
            await asyncio.gather(*list(self._email_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_bearer(self, authorization: str | None) -> str:
        token = extract_bearer_token(authorization)
        if token is None:
            raise UnauthorizedError("Invalid Authorization header")
        return token

    def _send_verification_email(self, address: str, token: str) -> None:
        task = asyncio.create_task(self.email_sender.send_verification_email(address, token))
        self._email_tasks.add(task)
        task.add_done_callback(self._email_task_done)

    def _email_task_done(self, task: asyncio.Task[None]) -> None:
        self._email_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Verification email task failed: {exc}")


def build_email_sender(settings: Settings) -> EmailSender:
    """HTTP relay when configured, otherwise log the delivery (with the link in debug mode)."""
    if settings.email_webhook_url:
        return HttpEmailSender(
            webhook_url=settings.email_webhook_url,
            verification_url_base=settings.verification_url_base,
            from_address=settings.email_from_address,
        )
    return LoggingEmailSender(settings.verification_url_base, include_link=settings.debug)


def build_auth_service(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    email_sender: EmailSender | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> AuthService:
    """Construct the process-wide AuthService and its collaborators.

    Must run once at startup, before any request is served.
    """
    directory = SqlUserDirectory(session_maker, clock=clock)
    return AuthService(
        directory=directory,
        verifier=CredentialVerifier(directory, require_verified=settings.require_verified_email),
        codec=TokenCodec(
            secret_key=settings.effective_jwt_secret_key,
            default_ttl=timedelta(seconds=settings.session_token_ttl_seconds),
            algorithm=settings.jwt_algorithm,
            clock=clock,
        ),
        blacklist=TokenBlacklist(clock=clock),
        verification_store=VerificationTokenStore(
            default_ttl=timedelta(seconds=settings.verification_token_ttl_seconds),
            clock=clock,
        ),
        email_sender=email_sender or build_email_sender(settings),
        revoke_on_refresh=settings.revoke_on_refresh,
    )
