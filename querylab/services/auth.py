"""Authentication service for JWT-based sessions."""

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import jwt
from jwt.exceptions import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from querylab.core import settings
from querylab.models.user import User
from querylab.services.passwords import dummy_hash, verify_password
from querylab.services.revocation import RevocationRegistry, persist_revocation
from querylab.services.user import UserService

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base authentication error."""

    pass


class InvalidCredentialsError(AuthError):
    """Invalid username or password."""

    pass


class TokenError(AuthError):
    """Session token error."""

    pass


class MissingTokenError(TokenError):
    """No bearer token was presented."""

    pass


class TokenExpiredError(TokenError):
    """JWT token has expired."""

    pass


class InvalidTokenError(TokenError):
    """JWT token is invalid."""

    pass


class TokenRevokedError(TokenError):
    """JWT token was revoked by logout."""

    pass


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of an access token."""

    subject_id: UUID
    username: str
    issued_at: datetime
    expires_at: datetime
    token_id: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionClaims":
        try:
            return cls(
                subject_id=UUID(str(payload["sub"])),
                username=str(payload["username"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
                token_id=str(payload["jti"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidTokenError(f"Malformed token claims: {e}") from e


def create_access_token(
    user_id: UUID,
    username: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed, time-limited access token."""
    now = datetime.now(UTC)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)
    payload = {
        "sub": str(user_id),
        "username": username,
        "iat": now,
        "exp": now + expires_delta,
        "type": "access",
        # Distinguishes tokens issued for the same user within one second
        "jti": secrets.token_hex(16),
    }
    token = jwt.encode(
        payload,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return str(token)


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "iat", "sub"]},
        )
        return payload
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError("Token has expired") from e
    except PyJWTError as e:
        raise InvalidTokenError(f"Invalid token: {e}") from e


def validate_access_token(token: str) -> SessionClaims:
    """Validate an access token and return its claims."""
    payload = decode_token(token)
    if payload.get("type") != "access":
        raise InvalidTokenError("Not an access token")
    return SessionClaims.from_payload(payload)


def peek_expiry(token: str) -> datetime | None:
    """Read a token's expiry without verifying it.

    Only used to decide how long a revocation entry must live.
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except PyJWTError:
        return None
    exp = payload.get("exp")
    if not isinstance(exp, int | float):
        return None
    return datetime.fromtimestamp(exp, tz=UTC)


class AuthService:
    """Service for registration, login and logout."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserService(session)

    async def register(self, username: str, email: str, password: str) -> dict[str, Any]:
        """Create a user and issue a token for it.

        Raises UsernameTakenError if the username is registered, including
        when a concurrent registration wins the race.
        """
        user = await self.users.create(username=username, email=email, password=password)
        logger.info(f"User registered: {user.username}")
        return self.create_token(user)

    async def authenticate(self, username: str, password: str) -> User:
        """Authenticate a user and return the user object.

        Raises InvalidCredentialsError for both "user not found" and
        "wrong password" to prevent user enumeration.
        """
        user = await self.users.get_by_username(username)

        if user is None:
            # Spend the same time as a real verification
            verify_password(password, dummy_hash())
            raise InvalidCredentialsError("Invalid username or password")

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Invalid username or password")

        return user

    async def login(self, username: str, password: str) -> dict[str, Any]:
        """Verify credentials and issue a fresh token."""
        user = await self.authenticate(username, password)
        logger.info(f"User logged in: {user.username}")
        return self.create_token(user)

    async def logout(self, token: str) -> None:
        """Revoke a token for the rest of its lifetime.

        A token whose expiry cannot be read is ignored; logout never fails
        the caller.
        """
        expires_at = peek_expiry(token)
        if expires_at is None:
            logger.debug("Ignoring logout for malformed token")
            return

        digest = RevocationRegistry.get_instance().revoke(token, expires_at)
        await persist_revocation(self.session, digest, expires_at)

    def create_token(self, user: User) -> dict[str, Any]:
        """Create an access token response for a user."""
        return {
            "access_token": create_access_token(user.id, user.username),
            "token_type": "bearer",
            "expires_in": settings.jwt_access_token_expire_minutes * 60,
        }
