# backend/ychat/services/sweeper.py

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from ychat.core.errors import PersistenceError
from ychat.services.message_store import MessageStore
from ychat.services.read_receipts import ReadReceiptTracker

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """
    Background task that purges expired messages at a fixed interval.

    The store already hides expired messages on read; the sweep reclaims
    space and invalidates the read-receipt cache for purged ids.
    """

    def __init__(self, store: MessageStore, tracker: ReadReceiptTracker, interval: float = 60.0) -> None:
        self.store = store
        self.tracker = tracker
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    async def sweep_once(self) -> List[str]:
        expired = await self.store.purge_expired()
        if expired:
            self.tracker.forget(expired)
            logger.info("🧹 Purged %d expired messages", len(expired))
        return expired

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except PersistenceError as e:
                logger.error("Expiry sweep failed, retrying next interval: %s", e)
            except Exception:
                logger.exception("Unexpected error in expiry sweep")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
            logger.info("✓ Expiry sweeper started (every %ss)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
