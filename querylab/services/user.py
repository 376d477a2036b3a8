"""User service - the credential store behind authentication and the user CRUD API."""

import builtins
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from querylab.models.user import User
from querylab.schemas.user import UserUpdate
from querylab.services.passwords import hash_password

logger = logging.getLogger(__name__)


class UserError(Exception):
    """Base user store error."""

    pass


class UserNotFoundError(UserError):
    """No user with the given identifier."""

    pass


class UsernameTakenError(UserError):
    """Username is already registered."""

    pass


class EmailTakenError(UserError):
    """Email address is already registered."""

    pass


class UserService:
    """Service for reading and writing user records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: UUID) -> User | None:
        """Get a user by ID."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> User | None:
        """Get a user by username."""
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        """Get a user by email address."""
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def list(self, skip: int = 0, limit: int = 50) -> builtins.list[User]:
        """List users, newest first."""
        result = await self.db.execute(
            select(User).order_by(User.created_at.desc(), User.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def create(self, username: str, email: str, password: str) -> User:
        """Create a user with a hashed password.

        The lookups give a friendly error for the common case; the unique
        constraints catch registrations that race past them.
        """
        if await self.get_by_username(username) is not None:
            raise UsernameTakenError("Username is already taken")
        if await self.get_by_email(email) is not None:
            raise EmailTakenError("Email already exists")

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
        )
        self.db.add(user)
        await self._flush_unique(username)
        await self.db.refresh(user)

        logger.info(f"Created user: {username}")
        return user

    async def update(self, user_id: UUID, data: UserUpdate) -> User:
        """Apply the fields present in ``data`` to an existing user."""
        user = await self.get(user_id)
        if user is None:
            raise UserNotFoundError("User Not Found")

        if data.username is not None and data.username != user.username:
            if await self.get_by_username(data.username) is not None:
                raise UsernameTakenError("Username is already taken")
            user.username = data.username
        if data.email is not None and data.email != user.email:
            if await self.get_by_email(data.email) is not None:
                raise EmailTakenError("Email already exists")
            user.email = data.email
        if data.password is not None:
            user.password_hash = hash_password(data.password)

        await self._flush_unique(user.username, exclude_id=user.id)
        await self.db.refresh(user)
        return user

    async def delete(self, user_id: UUID) -> None:
        """Delete a user."""
        user = await self.get(user_id)
        if user is None:
            raise UserNotFoundError(f"User with ID {user_id} not found")

        await self.db.delete(user)
        await self.db.flush()
        logger.info(f"Deleted user: {user.username}")

    async def _flush_unique(
        self, username: str, exclude_id: UUID | None = None
    ) -> None:
        """Flush pending changes, mapping unique-constraint violations to domain errors."""
        try:
            await self.db.flush()
        except IntegrityError as e:
            # The constraint is atomic, so a concurrent writer got there first
            await self.db.rollback()
            owner = await self.get_by_username(username)
            if owner is not None and owner.id != exclude_id:
                raise UsernameTakenError("Username is already taken") from e
            raise EmailTakenError("Email already exists") from e
