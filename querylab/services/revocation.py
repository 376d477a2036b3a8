"""Revocation registry for session tokens revoked before their natural expiry.

The guard consults an in-memory registry on every request so the check
never needs a database round-trip. Logout writes through to the
``revoked_tokens`` table so revocations survive a restart; the application
lifespan reloads live entries on startup and sweeps expired ones on an
interval.

Tokens are keyed by the SHA-256 digest of the raw token string. Each entry
carries the token's own expiry and is dropped once that passes, since the
issuer rejects the token as expired from then on.
"""

import hashlib
import logging
import threading
import time
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from querylab.models.revoked_token import RevokedToken

logger = logging.getLogger(__name__)


def token_digest(token: str) -> str:
    """SHA-256 hex digest used as the registry key for a raw token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class RevocationRegistry:
    """Process-wide set of revoked token digests with expiry-based eviction."""

    _instance: "RevocationRegistry | None" = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._entries: dict[str, float] = {}  # digest -> expiry timestamp
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "RevocationRegistry":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def revoke(self, token: str, expires_at: datetime) -> str:
        """Revoke a token until ``expires_at``. Revoking twice is a no-op.

        Returns the digest under which the token was recorded.
        """
        digest = token_digest(token)
        self.revoke_digest(digest, expires_at.timestamp())
        return digest

    def revoke_digest(self, digest: str, exp: float) -> None:
        with self._lock:
            # Keep the later expiry if the same token is revoked again
            self._entries[digest] = max(exp, self._entries.get(digest, exp))

    def is_revoked(self, token: str) -> bool:
        """Check whether a token has been revoked and has not yet expired."""
        digest = token_digest(token)
        with self._lock:
            exp = self._entries.get(digest)
            if exp is None:
                return False
            if time.time() > exp:
                del self._entries[digest]
                return False
            return True

    def cleanup_expired(self) -> int:
        """Remove entries whose tokens have expired. Returns count removed."""
        now = time.time()
        with self._lock:
            expired = [digest for digest, exp in self._entries.items() if now > exp]
            for digest in expired:
                del self._entries[digest]
            return len(expired)

    def load(self, entries: Iterable[tuple[str, float]]) -> int:
        """Merge persisted ``(digest, expiry)`` pairs into the registry."""
        count = 0
        for digest, exp in entries:
            self.revoke_digest(digest, exp)
            count += 1
        return count

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# --- Persistence ---


async def persist_revocation(db: AsyncSession, digest: str, expires_at: datetime) -> None:
    """Write a revocation to the database. Idempotent for the same digest.

    Concurrent logouts of the same token may both miss the row on the
    initial read; the loser's insert fails inside a savepoint and falls back
    to updating the row the winner wrote.
    """
    existing = await db.get(RevokedToken, digest)
    if existing is None:
        try:
            async with db.begin_nested():
                db.add(RevokedToken(token_hash=digest, expires_at=expires_at))
            return
        except IntegrityError:
            logger.debug("Revocation already persisted by a concurrent logout")
            existing = await db.get(RevokedToken, digest, populate_existing=True)
            if existing is None:
                raise
    if _as_utc(existing.expires_at) < expires_at:
        existing.expires_at = expires_at
    await db.flush()


async def load_active_revocations(db: AsyncSession) -> list[tuple[str, float]]:
    """Read revocations whose tokens have not yet expired."""
    now = datetime.now(tz=UTC)
    result = await db.execute(
        select(RevokedToken.token_hash, RevokedToken.expires_at).where(
            RevokedToken.expires_at > now
        )
    )
    return [(digest, _as_utc(expires_at).timestamp()) for digest, expires_at in result.all()]


async def cleanup_expired_revocations(db: AsyncSession) -> int:
    """Remove expired revocations from the database. Returns count removed."""
    now = datetime.now(tz=UTC)
    result: CursorResult[Any] = await db.execute(  # type: ignore[assignment]
        delete(RevokedToken).where(RevokedToken.expires_at < now)
    )
    return result.rowcount
