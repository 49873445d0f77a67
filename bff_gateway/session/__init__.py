"""
Server-side session layer: record storage, cookie signing and the
per-request coordinator.
"""

from .coordinator import SessionContext, SessionCoordinator
from .factory import create_session_store
from .local_store import LocalSessionStore
from .middleware import SessionMiddleware
from .redis_store import ConnectionState, RedisSessionStore
from .store import SessionStore, compute_expiry, compute_ttl_seconds
from .sweeper import SessionSweeper

__all__ = [
    "SessionStore",
    "LocalSessionStore",
    "RedisSessionStore",
    "ConnectionState",
    "SessionContext",
    "SessionCoordinator",
    "SessionMiddleware",
    "SessionSweeper",
    "create_session_store",
    "compute_expiry",
    "compute_ttl_seconds",
]
