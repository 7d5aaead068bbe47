"""Error taxonomy for interactive sessions and backend calls."""
from __future__ import annotations

from typing import Optional


class PokebotError(RuntimeError):
    """Base class for all errors raised by the bot."""


class SessionError(PokebotError):
    """Raised when an interaction cannot be applied to a session."""

    def __init__(self, message: str, session_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.session_id = session_id


class StaleSession(SessionError):
    """The session was destroyed or never existed."""


SessionNotFound = StaleSession


class NotOwner(SessionError):
    """The acting user does not own the session."""

    def __init__(self, session_id: str, actor_id: int) -> None:
        super().__init__(f"User {actor_id} does not own session {session_id}", session_id)
        self.actor_id = actor_id


class ValidationError(SessionError):
    """User input was out of bounds; the user should be prompted again."""


class SessionTimeout(SessionError):
    """An idle, hard, modal or domain timer ran out."""

    def __init__(self, reason: str, session_id: Optional[str] = None) -> None:
        super().__init__(f"Session timed out ({reason})", session_id)
        self.reason = reason


class IllegalTransition(SessionError):
    """The event is not valid in the session's current state."""


class BackendError(PokebotError):
    """The economy backend rejected or failed a request."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return self.message


class MalformedCustomId(ValueError):
    """A component custom id does not follow the session grammar."""


__all__ = [
    "BackendError",
    "IllegalTransition",
    "MalformedCustomId",
    "NotOwner",
    "PokebotError",
    "SessionError",
    "SessionNotFound",
    "SessionTimeout",
    "StaleSession",
    "ValidationError",
]
