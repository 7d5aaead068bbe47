"""Idle, hard and domain timers for interactive sessions."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ExpireCallback = Callable[[str, str], Awaitable[None]]

IDLE = "idle"
HARD = "hard"


class ExpirySupervisor:
    """Arms two timers per session and reports expiry to the engine.

    The hard timer mirrors the platform's interaction-token lifetime and is
    never re-armed. The idle timer is re-armed by :meth:`touch` on every valid
    owner event. A firing timer unregisters itself before calling
    ``on_expire``, so the callback may cancel the session's timers freely.
    """

    def __init__(self, on_expire: ExpireCallback) -> None:
        self._on_expire = on_expire
        self._timers: Dict[str, Dict[str, asyncio.Task]] = {}
        self._idle_windows: Dict[str, float] = {}

    def start(
        self,
        session_id: str,
        *,
        hard_timeout: Optional[float],
        idle_timeout: Optional[float],
    ) -> None:
        self._timers.setdefault(session_id, {})
        if idle_timeout:
            self._idle_windows[session_id] = idle_timeout
        self._arm(session_id, HARD, hard_timeout)
        self._arm(session_id, IDLE, idle_timeout)

    def touch(self, session_id: str) -> Optional[float]:
        """Restart the idle window; returns the window length if armed."""

        window = self._idle_windows.get(session_id)
        if window is None or session_id not in self._timers:
            return None
        self._arm(session_id, IDLE, window)
        return window

    def cancel(self, session_id: str) -> int:
        timers = self._timers.pop(session_id, {})
        self._idle_windows.pop(session_id, None)
        current = asyncio.current_task()
        for task in timers.values():
            if task is not current:
                task.cancel()
        return len(timers)

    def pending(self, session_id: str) -> List[str]:
        return sorted(self._timers.get(session_id, {}))

    async def shutdown(self) -> None:
        tasks = [task for timers in self._timers.values() for task in timers.values()]
        self._timers.clear()
        self._idle_windows.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _arm(self, session_id: str, kind: str, delay: Optional[float]) -> None:
        timers = self._timers.setdefault(session_id, {})
        previous = timers.pop(kind, None)
        if previous is not None and previous is not asyncio.current_task():
            previous.cancel()
        if not delay or delay <= 0:
            return
        timers[kind] = asyncio.create_task(
            self._fire(session_id, kind, delay), name=f"expiry-{kind}-{session_id}"
        )

    async def _fire(self, session_id: str, kind: str, delay: float) -> None:
        await asyncio.sleep(delay)
        timers = self._timers.get(session_id)
        if timers is not None and timers.get(kind) is asyncio.current_task():
            del timers[kind]
        logger.info("Session %s hit its %s timeout", session_id, kind)
        try:
            await self._on_expire(session_id, f"{kind}-timeout")
        except Exception:  # pragma: no cover - logged, timer tasks are fire-and-forget
            logger.exception("Expiry handler failed for session %s", session_id)


class DomainTimer:
    """Keyed one-shot timers for proposals directed at a second party.

    These outlive sessions: the callback is responsible for checking the
    counterpart resource itself and must not assume any session still exists.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, key: str, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        self.cancel(key)
        self._tasks[key] = asyncio.create_task(
            self._run(key, delay, callback), name=f"domain-timer-{key}"
        )

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task is asyncio.current_task():
            return False
        task.cancel()
        return True

    def pending(self) -> List[str]:
        return sorted(self._tasks)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, key: str, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(delay)
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        try:
            await callback()
        except Exception:  # pragma: no cover - logged, timer tasks are fire-and-forget
            logger.exception("Domain timer %s failed", key)


__all__ = ["DomainTimer", "ExpirySupervisor", "HARD", "IDLE"]
