"""Unit tests for access token issuance and verification."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import jwt
import pytest
from jwt.utils import base64url_encode

from querylab.core import settings
from querylab.services.auth import (
    InvalidTokenError,
    SessionClaims,
    TokenExpiredError,
    create_access_token,
    decode_token,
    peek_expiry,
    validate_access_token,
)


class TestCreateAccessToken:
    """Tests for create_access_token()."""

    def test_claims_round_trip(self):
        """Verified claims carry the subject and username the token was issued for."""
        user_id = uuid4()

        claims = validate_access_token(create_access_token(user_id, "alice"))

        assert isinstance(claims, SessionClaims)
        assert claims.subject_id == user_id
        assert claims.username == "alice"

    def test_default_window_is_configured_expiry(self):
        """Tokens expire after the configured number of minutes."""
        claims = validate_access_token(create_access_token(uuid4(), "alice"))

        window = claims.expires_at - claims.issued_at
        assert window == timedelta(minutes=settings.jwt_access_token_expire_minutes)

    def test_tokens_for_same_subject_differ(self):
        """Two tokens issued back to back for one user are distinct."""
        user_id = uuid4()

        first = create_access_token(user_id, "alice")
        second = create_access_token(user_id, "alice")

        assert first != second
        assert validate_access_token(first).token_id != validate_access_token(second).token_id


class TestValidateAccessToken:
    """Tests for decode_token() and validate_access_token()."""

    def test_valid_until_expiry(self):
        """A token with time left verifies."""
        token = create_access_token(uuid4(), "alice", expires_delta=timedelta(seconds=30))

        assert validate_access_token(token).username == "alice"

    def test_expired_token_rejected(self):
        """A token past its expiry raises TokenExpiredError."""
        token = create_access_token(uuid4(), "alice", expires_delta=timedelta(seconds=-10))

        with pytest.raises(TokenExpiredError):
            validate_access_token(token)

    def test_wrong_secret_rejected(self):
        """A token signed with another secret raises InvalidTokenError."""
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": str(uuid4()),
                "username": "mallory",
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "type": "access",
                "jti": "abc",
            },
            "another-secret-that-is-long-enough-0000",
            algorithm="HS256",
        )

        with pytest.raises(InvalidTokenError):
            validate_access_token(token)

    def test_tampered_token_rejected(self):
        """Changing the payload invalidates the signature."""
        token = create_access_token(uuid4(), "alice")
        header, _, signature = token.split(".")
        forged_payload = base64url_encode(b'{"sub":"x","username":"root"}').decode()

        with pytest.raises(InvalidTokenError):
            validate_access_token(f"{header}.{forged_payload}.{signature}")

    def test_garbage_rejected(self):
        with pytest.raises(InvalidTokenError):
            decode_token("not.a.token")

    def test_wrong_type_rejected(self):
        """Tokens not marked as access tokens are refused."""
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": str(uuid4()),
                "username": "alice",
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "type": "refresh",
                "jti": "abc",
            },
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )

        with pytest.raises(InvalidTokenError, match="Not an access token"):
            validate_access_token(token)

    def test_non_uuid_subject_rejected(self):
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": "42",
                "username": "alice",
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "type": "access",
                "jti": "abc",
            },
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )

        with pytest.raises(InvalidTokenError):
            validate_access_token(token)


class TestPeekExpiry:
    """Tests for peek_expiry()."""

    def test_reads_expiry_without_verification(self):
        token = create_access_token(uuid4(), "alice")

        assert peek_expiry(token) == validate_access_token(token).expires_at

    def test_reads_expiry_of_expired_token(self):
        token = create_access_token(uuid4(), "alice", expires_delta=timedelta(seconds=-10))

        expires_at = peek_expiry(token)

        assert expires_at is not None
        assert expires_at < datetime.now(UTC)

    def test_malformed_token_returns_none(self):
        assert peek_expiry("garbage") is None
