"""
In-process Session Store

TTL table of session records owned by a single LocalSessionStore instance.
Safe under concurrent requests on one event loop: every operation takes the
store lock and performs no awaits while holding it, so reads and writes to
the same session ID never interleave.

Suitable for development and single-worker deployments; records do not
survive a restart.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from ..models import SessionRecord
from .store import SessionStore, compute_expiry, utcnow

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    record: SessionRecord
    expire_at: datetime


class LocalSessionStore(SessionStore):
    """
    In-memory session backend with lazy eviction and a full-scan sweep.
    """

    backend_name = "local"

    def __init__(self):
        self._entries: Dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    async def set(self, session_id: str, record: SessionRecord) -> None:
        """
        Store a complete record, replacing any existing one.

        Args:
            session_id: Session identifier
            record: Full session record (no partial merge)
        """
        expire_at = compute_expiry(record)
        async with self._lock:
            self._entries[session_id] = _Entry(record=record.model_copy(deep=True), expire_at=expire_at)
        logger.debug(f"Stored session {session_id[:8]}..., expires at {expire_at.isoformat()}")

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        """
        Get a session record if it exists and hasn't expired.

        Expired entries found here are removed in the same call.
        """
        async with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            if entry.expire_at <= utcnow():
                del self._entries[session_id]
                logger.debug(f"Evicted expired session {session_id[:8]}... on read")
                return None
            # Hand out a copy so callers cannot mutate the stored payload
            return entry.record.model_copy(deep=True)

    async def destroy(self, session_id: str) -> None:
        async with self._lock:
            self._entries.pop(session_id, None)

    async def touch(self, session_id: str, record: SessionRecord) -> bool:
        """
        Slide the expiry of an existing session.

        The stored payload is left as is; only the expiry is recomputed from
        `record`. A missing or already-expired session is not recreated.
        """
        expire_at = compute_expiry(record)
        async with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return False
            if entry.expire_at <= utcnow():
                del self._entries[session_id]
                return False
            entry.expire_at = expire_at
            return True

    async def clear_expired(self) -> int:
        async with self._lock:
            now = utcnow()
            expired_keys = [
                key for key, entry in self._entries.items()
                if entry.expire_at <= now
            ]
            for key in expired_keys:
                del self._entries[key]

        if expired_keys:
            logger.info(f"Cleared {len(expired_keys)} expired sessions")
        return len(expired_keys)

    def __len__(self) -> int:
        return len(self._entries)
