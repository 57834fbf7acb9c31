# backend/ychat/services/read_receipts.py

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List

from ychat.core.errors import NotFoundError
from ychat.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class ReadReceiptTracker:
    """
    Cache of message id -> readers, derived from the message store.

    The store owns the read-by set. `record_read` writes through to it and
    replaces the cached entry with whatever the store returns, so the cache
    can lag but never diverge. Updates for the same message id are
    serialized with a per-id lock.
    """

    def __init__(self, store: MessageStore) -> None:
        self.store = store
        self._readers: Dict[str, List[str]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def record_read(self, message_id: str, username: str) -> List[str]:
        """
        Mark `message_id` as read by `username`.

        Returns:
            The full, updated reader list

        Raises:
            NotFoundError: unknown or expired message id
            PersistenceError: store failure
        """
        lock = self._locks.setdefault(message_id, asyncio.Lock())
        try:
            async with lock:
                readers = await self.store.mark_read(message_id, username)
                self._readers[message_id] = list(readers)
        except NotFoundError:
            self._readers.pop(message_id, None)
            self._locks.pop(message_id, None)
            raise
        return list(readers)

    def readers_of(self, message_id: str) -> List[str]:
        return list(self._readers.get(message_id, []))

    def forget(self, message_ids: Iterable[str]) -> None:
        """Drop cached state for messages the store has expired."""
        for message_id in message_ids:
            self._readers.pop(message_id, None)
            lock = self._locks.get(message_id)
            if lock is not None and not lock.locked():
                del self._locks[message_id]
