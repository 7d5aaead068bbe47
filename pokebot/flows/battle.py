"""Battle challenges: a proposal the challenged player accepts or declines."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..config import FlowTiming
from ..errors import BackendError
from ..models import Item, Outcome, PagedView, Session
from ..render import Button, ButtonStyle, Component, Embed, Render
from ..custom_id import make
from .base import Flow

logger = logging.getLogger(__name__)

PROPOSAL_TIMEOUT = "proposal-timeout"
EXPIRED_TEXT = "⏰ Battle request expired. Please challenge again."

CHOICES = (
    Item(key="accept", label="Accept", description="Start the battle"),
    Item(key="decline", label="Decline", description="Turn the challenge down"),
)


def timer_key(battle_id: str) -> str:
    return f"battle:{battle_id}"


class BattleChallengeFlow(Flow):
    """Owned by the challenged player, posted publicly in the channel.

    The proposal has its own expiry measured against the backend's battle
    record; it fires even if the session is already gone.
    """

    name = "battle"
    command = "pokebattle"
    title = "⚔️ Battle Challenge"
    colour = 0xE74C3C
    selection_style = "buttons"
    cancellable = False

    def __init__(self, timing: FlowTiming, expiry: float = 120.0) -> None:
        super().__init__(timing)
        self.expiry = expiry

    async def load_items(self, backend, owner_id, context) -> Sequence[Item]:
        return CHOICES

    def describe(self, session: Session, view: PagedView) -> List[str]:
        ctx = session.context
        return [
            f"<@{session.owner_user_id}>, you have been challenged by <@{ctx.get('challenger')}> "
            f"to a Pokémon battle! (Pokémon per side: {ctx.get('count', 1)})"
        ]

    def page_embed(self, session: Session, view: PagedView) -> Embed:
        friendly = session.context.get("friendly", True)
        return Embed(
            title=self.title,
            description=(
                "Friendly battle." if friendly
                else "Ranked battle: the winner gets 2x rewards and takes the loser's Pokémon."
            ),
            colour=self.colour,
        )

    def render_browse(self, session: Session, view: PagedView) -> Render:
        render = super().render_browse(session, view)
        styles = {"accept": ButtonStyle.SUCCESS, "decline": ButtonStyle.DANGER}
        components: List[Component] = []
        for component in render.components:
            if isinstance(component, Button):
                key = component.custom_id.rsplit(":", 1)[-1]
                component = Button(
                    custom_id=component.custom_id,
                    label=component.label,
                    style=styles.get(key, component.style),
                    disabled=component.disabled,
                    row=component.row,
                )
            components.append(component)
        return Render(content=render.content, components=tuple(components), embeds=render.embeds)

    def render_pending(self, session: Session) -> Render:
        return Render(content="⏳ Sending your answer…")

    async def submit(self, backend, session: Session) -> Outcome:
        item = self.selected(session)
        accept = item.key == "accept"
        ctx = session.context
        result = await backend.respond_battle(
            ctx["battle_id"],
            user_id=session.owner_user_id,
            accept=accept,
            guild_id=ctx.get("guild_id"),
        )
        if accept:
            message = result.get("message") or (
                f"<@{session.owner_user_id}> accepted the challenge from <@{ctx.get('challenger')}>!"
            )
        else:
            message = result.get("message") or (
                f"<@{session.owner_user_id}> declined the challenge from <@{ctx.get('challenger')}>."
            )
        return Outcome(success=True, message=str(message), details={"accepted": accept})

    async def after_started(self, engine, session: Session) -> None:
        battle_id = session.context["battle_id"]
        message = engine.message_for(session.session_id)

        async def _expire_proposal() -> None:
            await self.expire_proposal(engine, session, message)

        engine.domain_timers.schedule(timer_key(battle_id), self.expiry, _expire_proposal)

    async def expire_proposal(self, engine, session: Session, message) -> None:
        """Close a proposal that is still pending on the backend."""

        if await self._battle_status(engine.backend, session) != "pending":
            return
        if await engine.expire(session.session_id, PROPOSAL_TIMEOUT):
            return
        # The session already ended without the backend hearing about it.
        if message is not None:
            await message.edit(Render(content=EXPIRED_TEXT, components=self._disabled_choices(session)))
        await self._cancel_on_server(engine.backend, session)

    def _disabled_choices(self, session: Session) -> tuple:
        return tuple(
            Button(
                custom_id=make(self.name, session.session_id, "pick", item.key),
                label=item.label,
                style=ButtonStyle.SUCCESS if item.key == "accept" else ButtonStyle.DANGER,
                disabled=True,
            )
            for item in CHOICES
        )

    async def after_resolved(self, engine, session, outcome, message) -> None:
        engine.domain_timers.cancel(timer_key(session.context["battle_id"]))

    def expired_message(self, reason: str) -> str:
        return EXPIRED_TEXT

    def stale_message(self) -> str:
        return "This battle challenge is no longer active."

    async def on_expired(self, backend, session: Session, reason: str) -> None:
        if await self._battle_status(backend, session) == "pending":
            await self._cancel_on_server(backend, session)

    async def _battle_status(self, backend, session: Session) -> Optional[str]:
        """Server-side status; an unreachable backend counts as still pending."""

        battle_id = session.context["battle_id"]
        try:
            battle = await backend.get_battle(battle_id)
        except BackendError as exc:
            logger.warning("Could not check battle %s: %s", battle_id, exc)
            return "pending"
        return battle.get("status")

    async def _cancel_on_server(self, backend, session: Session) -> None:
        ctx = session.context
        await backend.respond_battle(
            ctx["battle_id"],
            user_id=session.owner_user_id,
            accept=False,
            guild_id=ctx.get("guild_id"),
            expired=True,
        )
        logger.info("Cancelled pending battle %s", ctx["battle_id"])


def challenge_context(
    battle: Dict[str, Any],
    *,
    challenger_id: int,
    guild_id: Optional[int],
    count: int,
    friendly: bool,
) -> Dict[str, Any]:
    return {
        "battle_id": str(battle["battleId"]),
        "challenger": challenger_id,
        "guild_id": guild_id,
        "count": count,
        "friendly": friendly,
    }


__all__ = [
    "BattleChallengeFlow",
    "EXPIRED_TEXT",
    "PROPOSAL_TIMEOUT",
    "challenge_context",
    "timer_key",
]
