"""Scoped subscriptions for modal submissions.

A modal is shown in response to one interaction but submitted as a brand new
interaction. Instead of attaching a global listener and a separate timer per
command, the engine subscribes for the session, awaits the submission with an
explicit budget and leaves the ``async with`` block, which always unsubscribes.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, List

from .errors import SessionError, SessionTimeout
from .models import InteractionEvent

logger = logging.getLogger(__name__)


class ModalSubscription:
    def __init__(self, broker: "ModalBroker", session_id: str) -> None:
        self.session_id = session_id
        self._broker = broker
        self._queue: "asyncio.Queue[InteractionEvent]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "ModalSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        for event in self.close():
            if event.sink is None:
                continue
            try:
                await event.sink.acknowledge()
            except Exception:
                logger.exception("Failed to acknowledge extra submission for %s", self.session_id)

    def close(self) -> List[InteractionEvent]:
        """Unsubscribe and return submissions that arrived but were never read."""

        if self._closed:
            return []
        self._closed = True
        self._broker._discard(self)
        leftovers: List[InteractionEvent] = []
        while not self._queue.empty():
            leftovers.append(self._queue.get_nowait())
        if leftovers:
            logger.debug("Dropping %d extra submissions for %s", len(leftovers), self.session_id)
        return leftovers

    def put(self, event: InteractionEvent) -> None:
        self._queue.put_nowait(event)

    async def wait(self, timeout: float) -> InteractionEvent:
        """Next submission for the session, or ``SessionTimeout``."""

        if self._closed:
            raise SessionError("Modal subscription already closed", self.session_id)
        if timeout <= 0:
            raise SessionTimeout("modal-timeout", self.session_id)
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError as exc:
            raise SessionTimeout("modal-timeout", self.session_id) from exc


class ModalBroker:
    """Routes modal submissions to the one outstanding wait per session."""

    def __init__(self) -> None:
        self._subscriptions: Dict[str, ModalSubscription] = {}

    def subscribe(self, session_id: str) -> ModalSubscription:
        if session_id in self._subscriptions:
            raise SessionError("A modal is already open for this session", session_id)
        subscription = ModalSubscription(self, session_id)
        self._subscriptions[session_id] = subscription
        return subscription

    def deliver(self, session_id: str, event: InteractionEvent) -> bool:
        subscription = self._subscriptions.get(session_id)
        if subscription is None:
            logger.debug("No modal wait for session %s; dropping submission", session_id)
            return False
        subscription.put(event)
        return True

    def is_waiting(self, session_id: str) -> bool:
        return session_id in self._subscriptions

    def _discard(self, subscription: ModalSubscription) -> None:
        if self._subscriptions.get(subscription.session_id) is subscription:
            del self._subscriptions[subscription.session_id]


__all__ = ["ModalBroker", "ModalSubscription"]
