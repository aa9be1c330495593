"""Single-use, time-bounded email verification tokens."""

import heapq
import logging
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from authcore.services.errors import (
    VerificationAlreadyConsumedError,
    VerificationExpiredError,
    VerificationNotFoundError,
)
from authcore.services.tokens import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PURGE_BATCH_SIZE = 500

# 32 random bytes -> 43 url-safe characters
_TOKEN_BYTES = 32


@dataclass
class VerificationToken:
    """A verification code tied to one account."""

    value: str
    user_ref: str
    expires_at: datetime
    consumed: bool = False


class VerificationTokenStore:
    """Issues and consumes verification tokens.

    At most one live token exists per user: issuing a new token revokes
    the previous unconsumed one. Consumed tokens are kept until their
    expiry so a replay reports AlreadyConsumed rather than NotFound.
    """

    def __init__(
        self,
        default_ttl: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if default_ttl <= timedelta(0):
            raise ValueError("default_ttl must be positive")
        self._default_ttl = default_ttl
        self._clock = clock
        self._tokens: dict[str, VerificationToken] = {}
        self._live_by_user: dict[str, str] = {}
        self._expiry_heap: list[tuple[datetime, str]] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def issue(self, user_ref: str, ttl: timedelta | None = None) -> VerificationToken:
        """Create a fresh token for user_ref, revoking any earlier live one."""
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        token = VerificationToken(
            value=secrets.token_urlsafe(_TOKEN_BYTES),
            user_ref=user_ref,
            expires_at=self._clock() + ttl,
        )
        with self._lock:
            previous = self._live_by_user.pop(user_ref, None)
            if previous is not None:
                stale = self._tokens.get(previous)
                if stale is not None and not stale.consumed:
                    del self._tokens[previous]
                    logger.info(f"Revoked previous verification token for {user_ref}")
            self._tokens[token.value] = token
            self._live_by_user[user_ref] = token.value
            heapq.heappush(self._expiry_heap, (token.expires_at, token.value))
        return token

    def consume(self, token_value: str) -> str:
        """Mark the token consumed and return its user reference.

        The lookup, state checks and the consumed flag flip happen under one
        lock hold, so concurrent calls for the same token yield exactly one
        success.

        Raises:
            VerificationNotFoundError: unknown, revoked or purged token
            VerificationAlreadyConsumedError: token was used before
            VerificationExpiredError: token's TTL has passed
        """
        now = self._clock()
        with self._lock:
            token = self._tokens.get(token_value)
            if token is None:
                raise VerificationNotFoundError("Verification token not found")
            if token.consumed:
                raise VerificationAlreadyConsumedError("Verification token already used")
            if token.expires_at <= now:
                raise VerificationExpiredError("Verification token has expired")
            token.consumed = True
            if self._live_by_user.get(token.user_ref) == token_value:
                del self._live_by_user[token.user_ref]
            return token.user_ref

    def purge_expired(
        self,
        now: datetime | None = None,
        batch_size: int = DEFAULT_PURGE_BATCH_SIZE,
    ) -> int:
        """Drop tokens whose TTL has passed, consumed or not. Returns count removed."""
        now = now or self._clock()
        removed = 0
        while True:
            with self._lock:
                popped = 0
                while popped < batch_size and self._expiry_heap and self._expiry_heap[0][0] <= now:
                    _, token_value = heapq.heappop(self._expiry_heap)
                    popped += 1
                    # Revoked tokens were already removed from the table
                    token = self._tokens.pop(token_value, None)
                    if token is None:
                        continue
                    removed += 1
                    if self._live_by_user.get(token.user_ref) == token_value:
                        del self._live_by_user[token.user_ref]
                done = not self._expiry_heap or self._expiry_heap[0][0] > now
            if done:
                break
        if removed:
            logger.debug(f"Purged {removed} expired verification tokens")
        return removed
