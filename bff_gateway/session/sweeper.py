"""
Periodic removal of expired sessions for backends without native TTL.
"""

import asyncio
import logging
from typing import Optional

from .store import SessionStore

logger = logging.getLogger(__name__)


class SessionSweeper:
    """
    Background task calling store.clear_expired() every `interval` seconds.

    Errors from a sweep are logged and the loop keeps running.
    """

    def __init__(self, store: SessionStore, interval: float):
        self.store = store
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        try:
            return await self.store.clear_expired()
        except Exception as e:
            logger.error(f"Session sweep failed: {e}", exc_info=True)
            return 0

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                await self.sweep_once()
        except asyncio.CancelledError:
            pass

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Session sweeper started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session sweeper stopped")
