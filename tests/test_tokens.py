"""Tests for the session token codec."""

from datetime import UTC, timedelta

import jwt
import pytest

from authcore.services.errors import (
    MalformedTokenError,
    SignatureInvalidError,
    TokenError,
    TokenExpiredError,
)
from authcore.services.tokens import TokenCodec

SECRET = "codec-test-secret-key-0123456789abcdef"
OTHER_SECRET = "another-secret-key-0123456789abcdef"


@pytest.fixture
def codec(clock) -> TokenCodec:
    return TokenCodec(secret_key=SECRET, default_ttl=timedelta(hours=1), clock=clock)


class TestIssue:
    def test_parse_returns_subject_immediately_after_issue(self, codec):
        for subject in ["alice", "bob", "user-42", "ünïcode"]:
            token = codec.issue(subject)
            claims = codec.parse(token.value)
            assert claims.subject == subject
            assert claims.expires_at == token.expires_at
            assert claims.token_id == token.token_id

    def test_issue_stamps_issued_and_expiry(self, codec, clock):
        token = codec.issue("alice", ttl=timedelta(minutes=5))
        assert token.issued_at == clock.now
        assert token.expires_at == clock.now + timedelta(minutes=5)

    def test_default_ttl_used_when_not_given(self, codec, clock):
        token = codec.issue("alice")
        assert token.expires_at - token.issued_at == timedelta(hours=1)

    def test_tokens_issued_in_same_second_are_distinct(self, codec):
        first = codec.issue("alice")
        second = codec.issue("alice")
        assert first.value != second.value
        assert first.token_id != second.token_id

    def test_empty_subject_rejected(self, codec):
        with pytest.raises(ValueError):
            codec.issue("")

    def test_non_positive_ttl_rejected(self, codec):
        with pytest.raises(ValueError):
            codec.issue("alice", ttl=timedelta(0))

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            TokenCodec(secret_key="", default_ttl=timedelta(hours=1))


class TestExpiry:
    def test_session_ttl_scenario(self, clock):
        """Issued at t=0 with TTL 3600s: valid at 3599, expired at 3601."""
        codec = TokenCodec(secret_key=SECRET, default_ttl=timedelta(seconds=3600), clock=clock)
        token = codec.issue("alice")

        clock.advance(3599)
        assert codec.parse(token.value).subject == "alice"

        clock.advance(2)
        with pytest.raises(TokenExpiredError):
            codec.parse(token.value)

    def test_expired_exactly_at_expiry(self, codec, clock):
        token = codec.issue("alice", ttl=timedelta(seconds=10))
        clock.advance(10)
        with pytest.raises(TokenExpiredError):
            codec.parse(token.value)

    def test_read_expiry_ignores_expiry(self, codec, clock):
        token = codec.issue("alice", ttl=timedelta(seconds=10))
        clock.advance(60)
        assert codec.read_expiry(token.value) == token.expires_at


class TestIntegrity:
    def test_wrong_key_is_signature_invalid(self, codec, clock):
        other = TokenCodec(
            secret_key=OTHER_SECRET, default_ttl=timedelta(hours=1), clock=clock
        )
        token = other.issue("alice")
        with pytest.raises(SignatureInvalidError):
            codec.parse(token.value)

    def test_tampered_payload_is_signature_invalid(self, codec):
        token = codec.issue("alice")
        header, _, signature = token.value.split(".")
        forged_payload = jwt.encode(
            {"sub": "mallory", "iat": 0, "exp": 4102444800}, "x" * 32, algorithm="HS256"
        ).split(".")[1]
        forged = f"{header}.{forged_payload}.{signature}"
        with pytest.raises(SignatureInvalidError):
            codec.parse(forged)

    def test_signature_checked_before_expiry(self, codec, clock):
        """A forged token is reported as forged even when it is also expired."""
        other = TokenCodec(
            secret_key=OTHER_SECRET, default_ttl=timedelta(seconds=1), clock=clock
        )
        token = other.issue("alice")
        clock.advance(3600)
        with pytest.raises(SignatureInvalidError):
            codec.parse(token.value)

    @pytest.mark.parametrize("value", ["", "not-a-token", "invalid.token.here", "a.b"])
    def test_garbage_is_malformed(self, codec, value):
        with pytest.raises(MalformedTokenError):
            codec.parse(value)

    def test_missing_subject_is_malformed(self, codec):
        value = jwt.encode({"iat": 0, "exp": 4102444800}, SECRET, algorithm="HS256")
        with pytest.raises(MalformedTokenError):
            codec.parse(value)

    def test_unsigned_token_is_rejected(self, codec):
        value = jwt.encode(
            {"sub": "alice", "iat": 0, "exp": 4102444800}, None, algorithm="none"
        )
        with pytest.raises(TokenError):
            codec.parse(value)

    def test_claims_are_utc(self, codec):
        claims = codec.parse(codec.issue("alice").value)
        assert claims.expires_at.tzinfo == UTC
        assert claims.issued_at.tzinfo == UTC
