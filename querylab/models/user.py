"""User model - the credential store for authentication."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from querylab.models.base import BaseModel


class User(BaseModel):
    """A registered user.

    Username and email are both unique. Uniqueness is enforced by the
    database so concurrent registrations for the same name cannot both
    succeed.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<User {self.username}>"
