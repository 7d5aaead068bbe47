"""Shared behaviour for command flows driven by the session engine."""
from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from ..config import FlowTiming
from ..custom_id import make
from ..errors import IllegalTransition, ValidationError
from ..models import Item, Outcome, PagedView, Session
from ..render import (
    Button,
    ButtonStyle,
    Component,
    Embed,
    ModalPrompt,
    Render,
    SelectMenu,
    SelectOption,
    TextInput,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..backend import BackendClient
    from ..render import MessageHandle
    from ..workflow import WorkflowEngine

QUANTITY_FIELD = "quantity"
QUERY_FIELD = "query"

_DIGITS = re.compile(r"^[0-9]+$")


def parse_quantity(raw: Optional[str], available: int) -> int:
    """Validate a typed quantity against ``[1, available]``."""

    text = (raw or "").strip()
    message = f"Invalid quantity. Please enter a number between 1 and {available}."
    if not _DIGITS.match(text):
        raise ValidationError(message)
    value = int(text)
    if not 1 <= value <= available:
        raise ValidationError(message)
    return value


class Flow:
    """One multi-step command.

    Subclasses declare how items are loaded, how a page is rendered and what
    the submitted action does. Selection style is ``"menu"`` (select menu),
    ``"buttons"`` (one button per visible item) or ``None`` for browse-only
    flows.
    """

    name: str = ""
    command: str = ""
    title: str = ""
    colour: int = 0x3498DB
    selection_style: Optional[str] = "menu"
    searchable: bool = False
    cancellable: bool = True
    bulk_label: Optional[str] = None
    placeholder: str = "Select an item"
    quantity_title: str = "Choose"

    def __init__(self, timing: FlowTiming) -> None:
        self.timing = timing

    # Loading ------------------------------------------------------------

    async def load_items(
        self, backend: "BackendClient", owner_id: int, context: Dict[str, Any]
    ) -> Sequence[Item]:
        raise NotImplementedError

    def empty_message(self, context: Mapping[str, Any]) -> str:
        return "Nothing to show here yet."

    # Browsing -----------------------------------------------------------

    def describe(self, session: Session, view: PagedView) -> List[str]:
        """Summary lines shown above the page."""

        return []

    def item_line(self, item: Item) -> str:
        if item.description:
            return f"**{item.label}** — {item.description}"
        return f"**{item.label}**"

    def page_embed(self, session: Session, view: PagedView) -> Embed:
        lines = [self.item_line(item) for item in view.visible_items]
        if not lines:
            lines = [f"No results for `{session.filter_query}`."]
        footer = f"Page {view.current_page + 1} of {view.total_pages}"
        if session.filter_query:
            footer += f" • filter: {session.filter_query} ({view.filtered_count} match)"
        return Embed(
            title=self.title,
            description="\n".join(lines),
            footer=footer,
            colour=self.colour,
        )

    def render_browse(self, session: Session, view: PagedView) -> Render:
        sid = session.session_id
        components: List[Component] = []
        nav_row = 1
        if self.selection_style == "menu" and view.visible_items:
            options = tuple(
                SelectOption(
                    label=item.label[:100],
                    value=item.key,
                    description=item.description[:100] or None,
                )
                for item in view.visible_items
                if item.actionable
            )
            if options:
                components.append(
                    SelectMenu(
                        custom_id=make(self.name, sid, "select", view.current_page),
                        placeholder=self.placeholder,
                        options=options,
                        row=0,
                    )
                )
        elif self.selection_style == "buttons":
            for index, item in enumerate(view.visible_items):
                components.append(
                    Button(
                        custom_id=make(self.name, sid, "pick", item.key),
                        label=item.label[:80],
                        style=ButtonStyle.PRIMARY if item.actionable else ButtonStyle.SECONDARY,
                        disabled=not item.actionable,
                        row=index // 5,
                    )
                )
            nav_row = (len(view.visible_items) + 4) // 5
        controls: List[Component] = []
        if view.total_pages > 1:
            controls.append(
                Button(
                    custom_id=make(self.name, sid, "prev", view.current_page),
                    label="Prev",
                    style=ButtonStyle.PRIMARY,
                    disabled=not view.has_prev,
                    row=nav_row,
                )
            )
            controls.append(
                Button(
                    custom_id=make(self.name, sid, "next", view.current_page),
                    label="Next",
                    style=ButtonStyle.PRIMARY,
                    disabled=not view.has_next,
                    row=nav_row,
                )
            )
        if self.searchable:
            controls.append(
                Button(
                    custom_id=make(self.name, sid, "search"),
                    label="Search",
                    row=nav_row,
                )
            )
        if self.bulk_label:
            controls.append(
                Button(
                    custom_id=make(self.name, sid, "all"),
                    label=self.bulk_label,
                    style=ButtonStyle.SUCCESS,
                    row=nav_row,
                )
            )
        if self.cancellable and self.selection_style is not None:
            controls.append(
                Button(
                    custom_id=make(self.name, sid, "cancel"),
                    label="Cancel",
                    style=ButtonStyle.DANGER,
                    row=nav_row,
                )
            )
        summary = self.describe(session, view)
        return Render(
            content="\n".join(summary) if summary else None,
            components=tuple(components + controls),
            embeds=(self.page_embed(session, view),),
        )

    def filter_prompt(self, session: Session) -> ModalPrompt:
        return ModalPrompt(
            custom_id=make(self.name, session.session_id, "filter"),
            title=f"Search {self.title}"[:45],
            inputs=(
                TextInput(
                    custom_id=QUERY_FIELD,
                    label="Name contains (leave empty to clear)",
                    required=False,
                    max_length=50,
                ),
            ),
        )

    # Selection ----------------------------------------------------------

    def requires_quantity(self, item: Item) -> bool:
        return False

    def selected(self, session: Session) -> Item:
        if session.selection is None:
            raise IllegalTransition("No item has been selected", session.session_id)
        return session.selection

    def quantity_prompt(self, session: Session) -> ModalPrompt:
        item = self.selected(session)
        return ModalPrompt(
            custom_id=make(self.name, session.session_id, "quantity"),
            title=f"{self.quantity_title} {item.label}"[:45],
            inputs=(
                TextInput(
                    custom_id=QUANTITY_FIELD,
                    label=f"How many? (max {item.available})"[:45],
                    placeholder=f"Enter a number between 1 and {item.available}",
                    min_length=1,
                    max_length=len(str(item.available)),
                ),
            ),
        )

    def render_invalid_quantity(self, session: Session, message: str) -> Render:
        return Render(
            content=message,
            components=(
                Button(
                    custom_id=make(self.name, session.session_id, "quantity"),
                    label="Enter quantity",
                    style=ButtonStyle.PRIMARY,
                ),
            ),
            ephemeral=True,
        )

    def unavailable_message(self) -> str:
        return "That option is not available. Please pick another one."

    def render_pending(self, session: Session) -> Render:
        label = session.selection.label if session.selection else "your request"
        return Render(content=f"⏳ Processing {label}…")

    # Submission ---------------------------------------------------------

    async def submit(self, backend: "BackendClient", session: Session) -> Outcome:
        raise NotImplementedError

    async def submit_bulk(self, backend: "BackendClient", session: Session) -> Outcome:
        raise NotImplementedError

    def render_result(self, session: Session, outcome: Outcome) -> Render:
        prefix = "✅" if outcome.success else "❌"
        return Render(content=f"{prefix} {outcome.message}")

    async def after_started(self, engine: "WorkflowEngine", session: Session) -> None:
        """Hook run once the first page is on screen."""

    async def after_resolved(
        self,
        engine: "WorkflowEngine",
        session: Session,
        outcome: Outcome,
        message: Optional["MessageHandle"],
    ) -> None:
        """Hook for follow-up sessions once an action resolved."""

    # Termination --------------------------------------------------------

    def render_cancelled(self, session: Session) -> Render:
        return Render(content="Cancelled.")

    def expired_message(self, reason: str) -> str:
        if reason == "modal-timeout":
            return "⏰ Timed out waiting for your answer. Please try again."
        return f"⏰ This menu has expired. Run `/{self.command}` again to continue."

    def stale_message(self) -> str:
        return f"This menu is no longer active. Please run `/{self.command}` again."

    async def on_expired(self, backend: "BackendClient", session: Session, reason: str) -> None:
        """Backend-side cleanup for counterpart resources."""


__all__ = ["Flow", "QUANTITY_FIELD", "QUERY_FIELD", "parse_quantity"]
