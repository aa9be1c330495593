"""Tests for the in-memory token blacklist."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from authcore.services.blacklist import TokenBlacklist


@pytest.fixture
def blacklist(clock) -> TokenBlacklist:
    return TokenBlacklist(clock=clock)


class TestTokenBlacklist:
    def test_added_token_is_blacklisted_until_expiry(self, blacklist, clock):
        blacklist.add("tok-1", clock.now + timedelta(seconds=100))

        for _ in range(99):
            clock.advance(1)
            assert blacklist.is_blacklisted("tok-1") is True

    def test_unknown_token_is_not_blacklisted(self, blacklist):
        assert blacklist.is_blacklisted("never-added") is False

    def test_add_is_idempotent(self, blacklist, clock):
        expires_at = clock.now + timedelta(seconds=100)
        assert blacklist.add("tok-1", expires_at) is True
        assert blacklist.add("tok-1", expires_at) is False
        assert blacklist.add("tok-1", expires_at + timedelta(hours=1)) is False
        assert len(blacklist) == 1

    def test_already_expired_token_is_not_stored(self, blacklist, clock):
        assert blacklist.add("tok-1", clock.now - timedelta(seconds=1)) is False
        assert len(blacklist) == 0

    def test_entry_evicted_lazily_after_expiry(self, blacklist, clock):
        blacklist.add("tok-1", clock.now + timedelta(seconds=10))
        clock.advance(10)
        assert blacklist.is_blacklisted("tok-1") is False
        assert len(blacklist) == 0

    def test_purge_removes_only_expired(self, blacklist, clock):
        for i in range(10):
            blacklist.add(f"short-{i}", clock.now + timedelta(seconds=10))
            blacklist.add(f"long-{i}", clock.now + timedelta(seconds=1000))

        clock.advance(10)
        assert blacklist.purge_expired() == 10
        assert len(blacklist) == 10
        assert all(blacklist.is_blacklisted(f"long-{i}") for i in range(10))

    def test_purge_with_small_batches_removes_everything_expired(self, blacklist, clock):
        for i in range(1234):
            blacklist.add(f"tok-{i}", clock.now + timedelta(seconds=1 + i % 7))

        clock.advance(60)
        assert blacklist.purge_expired(batch_size=50) == 1234
        assert len(blacklist) == 0

    def test_purge_skips_lazily_evicted_entries(self, blacklist, clock):
        blacklist.add("tok-1", clock.now + timedelta(seconds=5))
        blacklist.add("tok-2", clock.now + timedelta(seconds=5))
        clock.advance(5)
        assert blacklist.is_blacklisted("tok-1") is False
        assert blacklist.purge_expired() == 1

    def test_purge_accepts_explicit_now(self, blacklist, clock):
        blacklist.add("tok-1", clock.now + timedelta(seconds=5))
        assert blacklist.purge_expired(now=clock.now + timedelta(seconds=5)) == 1

    def test_size_bounded_by_rate_times_ttl(self, blacklist, clock):
        """With steady revocations and periodic purges the table stays bounded."""
        ttl = timedelta(seconds=60)
        peak = 0
        for second in range(600):
            blacklist.add(f"tok-{second}", clock.now + ttl)
            clock.advance(1)
            if second % 10 == 0:
                blacklist.purge_expired()
            peak = max(peak, len(blacklist))
        assert peak <= 60 + 10

    def test_concurrent_adds_store_one_entry(self, blacklist, clock):
        expires_at = clock.now + timedelta(seconds=100)
        barrier = threading.Barrier(16)

        def add():
            barrier.wait()
            return blacklist.add("shared", expires_at)

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: add(), range(16)))

        assert results.count(True) == 1
        assert len(blacklist) == 1
