"""
Session Store Contract
======================

Abstract interface implemented by every session backend, plus the expiry
rules they share.

Operations:
    set(session_id, record)     whole-record upsert
    get(session_id)             None when missing or expired (self-cleaning read)
    destroy(session_id)         idempotent delete
    touch(session_id, record)   slide expiry, never resurrect
    clear_expired()             sweep, returns number of records removed

Expiry is derived from the record's cookie metadata: `cookie.expires` when
present, otherwise a fixed 24 hour window from the time of the write.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..models import SessionRecord

DEFAULT_SESSION_TTL = timedelta(hours=24)

# TTL floor for backends with native per-key expiry
MIN_TTL_SECONDS = 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_expiry(record: SessionRecord, now: Optional[datetime] = None) -> datetime:
    """
    Compute the instant after which a stored record is logically absent.

    Args:
        record: Session record about to be written or touched
        now: Reference time (defaults to the current UTC time)

    Returns:
        `record.cookie.expires` if set, else now + 24 hours
    """
    if record.cookie.expires is not None:
        return record.cookie.expires
    return (now or utcnow()) + DEFAULT_SESSION_TTL


def compute_ttl_seconds(record: SessionRecord, now: Optional[datetime] = None) -> int:
    """
    Whole seconds until the record's expiry, floored at MIN_TTL_SECONDS.

    The floor avoids churn from records written moments before they expire.
    """
    now = now or utcnow()
    remaining = (compute_expiry(record, now) - now).total_seconds()
    return max(int(remaining), MIN_TTL_SECONDS)


class SessionStore(ABC):
    """
    Base class for session backends.

    Implementations must never return a record whose expiry has passed and
    must never let `touch` create a session that does not exist.
    """

    #: Short backend name reported by the health endpoint
    backend_name: str = "abstract"

    @abstractmethod
    async def set(self, session_id: str, record: SessionRecord) -> None:
        """
        Store a complete session record, replacing any existing one.

        Raises:
            StoreError: If the backend cannot persist the record
        """

    @abstractmethod
    async def get(self, session_id: str) -> Optional[SessionRecord]:
        """Return the live record for `session_id`, or None."""

    @abstractmethod
    async def destroy(self, session_id: str) -> None:
        """Delete a session. Deleting an unknown ID is not an error."""

    @abstractmethod
    async def touch(self, session_id: str, record: SessionRecord) -> bool:
        """
        Extend a session's expiry without changing its stored payload.

        Returns:
            True if the session existed and was extended, False otherwise
        """

    @abstractmethod
    async def clear_expired(self) -> int:
        """Remove expired sessions and return how many were removed."""

    async def connect(self) -> None:
        """Establish backend connectivity (no-op for in-process backends)."""

    async def close(self) -> None:
        """Release backend resources."""

    def describe(self) -> str:
        """Backend name and state, for health reporting."""
        return self.backend_name
