"""Revoked session tokens — survives process restarts."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from querylab.core.database import Base


class RevokedToken(Base):
    """A token revoked at logout, identified by the SHA-256 digest of the raw token.

    Entries are cleaned up once the token would have expired anyway.
    """

    __tablename__ = "revoked_tokens"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
