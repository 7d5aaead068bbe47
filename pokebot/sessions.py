"""In-memory session store with linearized per-session mutation."""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, TypeVar

from .errors import NotOwner, StaleSession
from .models import Item, Session

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionStore:
    """Arena of live sessions addressed by id.

    ``mutate`` is the only way to change a session. Callers for the same id
    queue on a per-session lock, so two events never interleave their
    read-modify-write of ``page_index`` or ``selection``. Mutators are plain
    functions; no lock is held across a backend call.
    """

    def __init__(self, tombstone_ttl: float = 900.0) -> None:
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tombstones: Dict[str, Tuple[float, Optional[Session]]] = {}
        self._tombstone_ttl = tombstone_ttl

    def create(
        self,
        owner_user_id: int,
        items: Iterable[Item],
        page_size: int,
        *,
        flow: str,
        context: Optional[Mapping[str, Any]] = None,
        hard_timeout: Optional[float] = None,
        idle_timeout: Optional[float] = None,
    ) -> Session:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        session_id = uuid.uuid4().hex[:12]
        while session_id in self._sessions or session_id in self._tombstones:
            session_id = uuid.uuid4().hex[:12]
        now = datetime.now(timezone.utc)
        session = Session(
            session_id=session_id,
            flow=flow,
            owner_user_id=int(owner_user_id),
            items=tuple(items),
            page_size=page_size,
            context=dict(context or {}),
            created_at=now,
            hard_expires_at=now + timedelta(seconds=hard_timeout) if hard_timeout else None,
            idle_expires_at=now + timedelta(seconds=idle_timeout) if idle_timeout else None,
        )
        self._sessions[session_id] = session
        self._locks[session_id] = asyncio.Lock()
        logger.debug(
            "Created %s session %s for %s with %d items",
            flow,
            session_id,
            owner_user_id,
            len(session.items),
        )
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise StaleSession(f"Session {session_id} is no longer active", session_id)
        return session.snapshot()

    def authorize(self, session: Session, actor_id: int) -> None:
        if int(actor_id) != session.owner_user_id:
            raise NotOwner(session.session_id, actor_id)

    async def mutate(self, session_id: str, fn: Callable[[Session], T]) -> Session:
        """Apply ``fn`` to the live session under its lock; return a snapshot."""

        lock = self._locks.get(session_id)
        if lock is None:
            raise StaleSession(f"Session {session_id} is no longer active", session_id)
        async with lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise StaleSession(f"Session {session_id} was destroyed", session_id)
            fn(session)
            return session.snapshot()

    def destroy(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        self._locks.pop(session_id, None)
        self._tombstones[session_id] = (time.monotonic(), session.snapshot() if session else None)
        if session is not None:
            logger.debug("Destroyed session %s in state %s", session_id, session.state.value)
        self.prune_tombstones()

    def is_tombstoned(self, session_id: str) -> bool:
        return session_id in self._tombstones

    def final_state(self, session_id: str) -> Optional[Session]:
        """Last snapshot of a destroyed session, while its tombstone lasts."""

        entry = self._tombstones.get(session_id)
        return entry[1] if entry else None

    def prune_tombstones(self, now: Optional[float] = None) -> int:
        cutoff = (now if now is not None else time.monotonic()) - self._tombstone_ttl
        expired = [sid for sid, (stamp, _) in self._tombstones.items() if stamp < cutoff]
        for sid in expired:
            del self._tombstones[sid]
        return len(expired)

    @property
    def active_count(self) -> int:
        return len(self._sessions)


__all__ = ["SessionStore"]
