"""Component custom-id wire format.

Every interactive component rendered for a session carries a custom id of the
form::

    flow ":" session_id ":" verb [ ":" arg ]

``flow`` names the command flow, ``session_id`` is the hex session id, ``verb``
is one of :data:`VERBS` and ``arg`` is percent-encoded free text (page index
for navigation, item key for button picks). Ids are parsed once, at the event
routing boundary.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, unquote

from .errors import MalformedCustomId

MAX_LENGTH = 100

VERBS = frozenset(
    {"prev", "next", "select", "pick", "all", "search", "filter", "quantity", "cancel"}
)

_FLOW_RE = re.compile(r"^[a-z_]+$")
_SESSION_RE = re.compile(r"^[0-9a-f]+$")


@dataclass(frozen=True)
class CustomId:
    flow: str
    session_id: str
    verb: str
    arg: Optional[str] = None

    def encode(self) -> str:
        if not _FLOW_RE.match(self.flow):
            raise MalformedCustomId(f"Invalid flow name {self.flow!r}")
        if not _SESSION_RE.match(self.session_id):
            raise MalformedCustomId(f"Invalid session id {self.session_id!r}")
        if self.verb not in VERBS:
            raise MalformedCustomId(f"Unknown verb {self.verb!r}")
        parts = [self.flow, self.session_id, self.verb]
        if self.arg is not None:
            parts.append(quote(self.arg, safe=""))
        raw = ":".join(parts)
        if len(raw) > MAX_LENGTH:
            raise MalformedCustomId(f"Custom id exceeds {MAX_LENGTH} characters: {raw!r}")
        return raw

    @classmethod
    def parse(cls, raw: str) -> "CustomId":
        if not raw or len(raw) > MAX_LENGTH:
            raise MalformedCustomId(f"Invalid custom id length: {raw!r}")
        parts = raw.split(":")
        if len(parts) not in (3, 4):
            raise MalformedCustomId(f"Expected 3 or 4 segments in {raw!r}")
        flow, session_id, verb = parts[:3]
        if not _FLOW_RE.match(flow) or not _SESSION_RE.match(session_id):
            raise MalformedCustomId(f"Invalid flow or session in {raw!r}")
        if verb not in VERBS:
            raise MalformedCustomId(f"Unknown verb {verb!r} in {raw!r}")
        arg = unquote(parts[3]) if len(parts) == 4 else None
        return cls(flow=flow, session_id=session_id, verb=verb, arg=arg)

    def page_arg(self) -> int:
        """Page index the navigation control was rendered from."""

        try:
            return int(self.arg or "")
        except ValueError as exc:
            raise MalformedCustomId(f"Navigation id without page index: {self.arg!r}") from exc

    @property
    def action_key(self) -> str:
        """Idempotency key for this control."""

        if self.verb in ("select", "pick"):
            return "select"
        return self.verb


def make(flow: str, session_id: str, verb: str, arg: Optional[object] = None) -> str:
    return CustomId(flow, session_id, verb, None if arg is None else str(arg)).encode()


__all__ = ["CustomId", "MAX_LENGTH", "VERBS", "make"]
