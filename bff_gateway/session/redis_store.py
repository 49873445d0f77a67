"""
Remote Session Store (Redis)

Wire format:
    key   = "session:<sessionId>"
    value = JSON-serialized SessionRecord (camelCase keys)
    TTL   = seconds until the record's expiry, floored at 60 seconds

Redis evicts keys natively, so clear_expired() is a no-op. The connection
is established asynchronously at startup; its state is tracked explicitly
and every operation fails fast with StoreUnavailableError unless the store
is READY. A connection error during an operation moves the store to FAILED.
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Optional

import redis.asyncio as redis_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..exceptions import StoreError, StoreUnavailableError
from ..models import SessionRecord
from .store import SessionStore, compute_expiry, compute_ttl_seconds, utcnow

logger = logging.getLogger(__name__)

KEY_PREFIX = "session:"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


def session_key(session_id: str) -> str:
    return f"{KEY_PREFIX}{session_id}"


class RedisSessionStore(SessionStore):
    """
    Session backend on a remote Redis instance.

    Args:
        url: Redis connection URL (e.g., redis://localhost:6379/0)
        client: Pre-built asyncio Redis client (mainly for tests); created
                from `url` on connect() when omitted
    """

    backend_name = "remote"

    def __init__(self, url: str, client: Optional[Any] = None):
        self._url = url
        self._client = client
        self._state = ConnectionState.CONNECTING

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def connect(self) -> None:
        """
        Open the connection and verify it with PING.

        Failures are logged and leave the store in FAILED; they are not raised,
        so a missing Redis does not prevent the gateway from starting.
        """
        self._state = ConnectionState.CONNECTING
        try:
            if self._client is None:
                self._client = redis_asyncio.from_url(self._url, decode_responses=True)
            await self._client.ping()
        except (RedisError, OSError, ValueError) as e:
            self._state = ConnectionState.FAILED
            logger.warning(
                "Failed to connect to Redis for session storage",
                extra={"error": type(e).__name__},
            )
            return

        self._state = ConnectionState.READY
        logger.info("Connected to Redis for session storage")

    async def close(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            except RedisError as e:
                logger.warning(f"Error closing Redis client: {e}")
        self._state = ConnectionState.FAILED

    def describe(self) -> str:
        return f"{self.backend_name} ({self._state.value})"

    # ------------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------------

    def _require_client(self) -> Any:
        if self._state is not ConnectionState.READY or self._client is None:
            raise StoreUnavailableError(
                f"Remote session store is not available (state={self._state.value})"
            )
        return self._client

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as e:
            self._state = ConnectionState.FAILED
            logger.error(f"Redis connection lost during session {operation}")
            raise StoreUnavailableError(f"Remote session store unavailable during {operation}") from e
        except RedisError as e:
            logger.error(f"Redis error during session {operation}: {type(e).__name__}")
            raise StoreError(f"Session {operation} failed") from e

    # ------------------------------------------------------------------------
    # SessionStore operations
    # ------------------------------------------------------------------------

    async def set(self, session_id: str, record: SessionRecord) -> None:
        client = self._require_client()
        key = session_key(session_id)
        now = utcnow()

        with self._translate_errors("set"):
            if compute_expiry(record, now) <= now:
                # Already expired: the record is logically absent
                await client.delete(key)
                return
            await client.set(key, record.to_wire(), ex=compute_ttl_seconds(record, now))

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        client = self._require_client()

        with self._translate_errors("get"):
            data = await client.get(session_key(session_id))

        if not data:
            return None

        try:
            return SessionRecord.from_wire(data)
        except ValueError:
            logger.error(f"Failed to parse session JSON from Redis for {session_id[:8]}...")
            return None

    async def destroy(self, session_id: str) -> None:
        client = self._require_client()
        with self._translate_errors("destroy"):
            await client.delete(session_key(session_id))

    async def touch(self, session_id: str, record: SessionRecord) -> bool:
        """Reset the key's TTL; EXPIRE on a missing key is a no-op in Redis."""
        client = self._require_client()
        with self._translate_errors("touch"):
            result = await client.expire(session_key(session_id), compute_ttl_seconds(record))
        return bool(result)

    async def clear_expired(self) -> int:
        logger.debug("Redis automatically handles expired sessions")
        return 0
