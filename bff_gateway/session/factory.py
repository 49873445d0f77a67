"""
Session store selection.

The backend is chosen once, when the application is constructed, from
SESSION_STORE_TYPE; request handling never re-reads the configuration.
"""

import logging

from ..config import Settings
from .local_store import LocalSessionStore
from .redis_store import RedisSessionStore
from .store import SessionStore

logger = logging.getLogger(__name__)


def create_session_store(settings: Settings) -> SessionStore:
    """
    Instantiate the configured session backend.

    The remote backend is returned unconnected; the application lifespan
    calls connect() in the background.
    """
    if settings.SESSION_STORE_TYPE == "remote":
        logger.info("Using remote (Redis) session store")
        return RedisSessionStore(settings.REDIS_URL)

    logger.info("Using in-process session store")
    return LocalSessionStore()
