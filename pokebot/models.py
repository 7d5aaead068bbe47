"""Core data models for interactive sessions."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Set, Tuple

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .render import RenderSink


class SessionState(str, Enum):
    BROWSING = "browsing"
    CONFIRMING_QUANTITY = "confirming_quantity"
    SUBMITTING = "submitting"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {SessionState.RESOLVED, SessionState.CANCELLED, SessionState.EXPIRED}
)


class EventKind(str, Enum):
    CLICK = "click"
    SELECT = "select"
    MODAL_SUBMIT = "modal_submit"


@dataclass(frozen=True)
class Item:
    """One browsable entry of a session's collection."""

    key: str
    label: str
    description: str = ""
    search_fields: Tuple[str, ...] = ()
    available: int = 1
    payload: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def actionable(self) -> bool:
        return self.available > 0


@dataclass(frozen=True)
class PagedView:
    """Read-only slice of a filtered collection."""

    visible_items: Tuple[Item, ...]
    total_pages: int
    current_page: int
    filtered_count: int

    @property
    def has_prev(self) -> bool:
        return self.current_page > 0

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages - 1


@dataclass
class Outcome:
    """Result of a submitted action as reported to the user."""

    success: bool
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    completed: List[Dict[str, Any]] = field(default_factory=list)
    failed: Optional[Dict[str, Any]] = None
    skipped: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.completed) and self.failed is not None


@dataclass
class Session:
    session_id: str
    flow: str
    owner_user_id: int
    items: Tuple[Item, ...]
    page_size: int
    state: SessionState = SessionState.BROWSING
    filter_query: Optional[str] = None
    page_index: int = 0
    selection: Optional[Item] = None
    quantity: Optional[int] = None
    bulk: bool = False
    pending_action_keys: Set[str] = field(default_factory=set)
    modal_open: bool = False
    context: Mapping[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    hard_expires_at: Optional[datetime] = None
    idle_expires_at: Optional[datetime] = None
    outcome: Optional[Outcome] = None

    def find_item(self, key: str) -> Optional[Item]:
        for item in self.items:
            if item.key == key:
                return item
        return None

    def snapshot(self) -> "Session":
        """Copy safe to read outside the store lock."""

        clone = copy.copy(self)
        clone.pending_action_keys = set(self.pending_action_keys)
        return clone


@dataclass(frozen=True)
class InteractionEvent:
    """A single component or modal interaction delivered by the chat platform."""

    kind: EventKind
    actor_id: int
    custom_id: str
    message_id: Optional[int] = None
    values: Tuple[str, ...] = ()
    fields: Mapping[str, str] = field(default_factory=dict)
    sink: Optional["RenderSink"] = field(default=None, compare=False)


__all__ = [
    "EventKind",
    "InteractionEvent",
    "Item",
    "Outcome",
    "PagedView",
    "Session",
    "SessionState",
]
