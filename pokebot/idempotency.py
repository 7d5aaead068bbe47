"""Per-session suppression of duplicate action submissions."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from .errors import StaleSession
from .models import Session
from .sessions import SessionStore

logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """Tracks in-flight action keys on the session record itself."""

    def __init__(self, store: SessionStore) -> None:
        self._store = store

    async def try_acquire(self, session_id: str, action_key: str) -> bool:
        acquired = False

        def _acquire(session: Session) -> None:
            nonlocal acquired
            if action_key in session.pending_action_keys:
                return
            session.pending_action_keys.add(action_key)
            acquired = True

        await self._store.mutate(session_id, _acquire)
        if not acquired:
            logger.debug("Ignoring duplicate %s on session %s", action_key, session_id)
        return acquired

    async def release(self, session_id: str, action_key: str) -> None:
        try:
            await self._store.mutate(
                session_id, lambda session: session.pending_action_keys.discard(action_key)
            )
        except StaleSession:
            # Terminal transitions clear the keys before destroying the session.
            pass

    @asynccontextmanager
    async def claim(self, session_id: str, action_key: str) -> AsyncIterator[bool]:
        """Hold ``action_key`` for the duration of the block.

        Yields ``False`` when another event already holds the key; the caller
        should then drop its event without rendering anything.
        """

        acquired = await self.try_acquire(session_id, action_key)
        try:
            yield acquired
        finally:
            if acquired:
                await self.release(session_id, action_key)


__all__ = ["IdempotencyGuard"]
