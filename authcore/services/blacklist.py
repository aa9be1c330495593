"""In-memory blacklist of session tokens revoked before their expiry."""

import heapq
import logging
import threading
from collections.abc import Callable
from datetime import datetime

from authcore.services.tokens import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PURGE_BATCH_SIZE = 500


class TokenBlacklist:
    """Revoked token values, each kept only until the token would expire anyway.

    Entries live in a dict for O(1) lookup and in a min-heap keyed by
    expiry so purging touches only expired entries. The table never holds
    more than (revocations per second x token TTL) entries.

    Designed for single-process deployments.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._entries: dict[str, datetime] = {}
        self._expiry_heap: list[tuple[datetime, str]] = []
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def add(self, token_value: str, expires_at: datetime) -> bool:
        """Revoke a token until expires_at.

        Returns True if the token was newly added. Adding a token twice, or
        adding one that has already expired, changes nothing.
        """
        now = self._clock()
        with self._lock:
            if token_value in self._entries:
                return False
            if expires_at <= now:
                return False
            self._entries[token_value] = expires_at
            heapq.heappush(self._expiry_heap, (expires_at, token_value))
            return True

    def is_blacklisted(self, token_value: str, now: datetime | None = None) -> bool:
        """True while the token is revoked and not yet naturally expired."""
        now = now or self._clock()
        with self._lock:
            expires_at = self._entries.get(token_value)
            if expires_at is None:
                return False
            if expires_at <= now:
                # The codec rejects it on expiry alone; evict lazily
                del self._entries[token_value]
                return False
            return True

    def purge_expired(
        self,
        now: datetime | None = None,
        batch_size: int = DEFAULT_PURGE_BATCH_SIZE,
    ) -> int:
        """Remove entries whose expiry has passed. Returns count removed.

        Works through the expiry heap in batches, releasing the lock between
        batches so lookups are never blocked for a full sweep.
        """
        now = now or self._clock()
        removed = 0
        while True:
            with self._lock:
                popped = 0
                while popped < batch_size and self._expiry_heap and self._expiry_heap[0][0] <= now:
                    expires_at, token_value = heapq.heappop(self._expiry_heap)
                    popped += 1
                    # A lazily evicted entry may already be gone
                    if self._entries.get(token_value) == expires_at:
                        del self._entries[token_value]
                        removed += 1
                done = not self._expiry_heap or self._expiry_heap[0][0] > now
            if done:
                break
        if removed:
            logger.debug(f"Purged {removed} expired blacklist entries")
        return removed
