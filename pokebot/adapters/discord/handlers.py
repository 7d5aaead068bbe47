"""Discord interaction plumbing for the session engine.

``DiscordRenderSink`` answers one component or modal interaction. The message
handles edit a session's message when no interaction is at hand, e.g. when a
timer fires.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import discord

from ...models import EventKind, InteractionEvent
from ...render import ModalPrompt, Render
from .builders import build_modal, message_kwargs

_COMPONENT_SELECT = 3


class DiscordRenderSink:
    def __init__(self, interaction: discord.Interaction) -> None:
        self.interaction = interaction

    async def acknowledge(self) -> None:
        if not self.interaction.response.is_done():
            await self.interaction.response.defer()

    async def update(self, render: Render) -> None:
        kwargs = message_kwargs(render, edit=True)
        if self.interaction.response.is_done():
            await self.interaction.edit_original_response(**kwargs)
        else:
            await self.interaction.response.edit_message(**kwargs)

    async def reply(self, render: Render) -> None:
        kwargs = message_kwargs(render, edit=False)
        if self.interaction.response.is_done():
            await self.interaction.followup.send(ephemeral=render.ephemeral, **kwargs)
        else:
            await self.interaction.response.send_message(ephemeral=render.ephemeral, **kwargs)

    async def show_modal(self, modal: ModalPrompt) -> None:
        await self.interaction.response.send_modal(build_modal(modal))


class InteractionMessage:
    """The original response of a (deferred) slash command."""

    def __init__(self, interaction: discord.Interaction) -> None:
        self.interaction = interaction

    async def edit(self, render: Render) -> None:
        await self.interaction.edit_original_response(**message_kwargs(render, edit=True))

    def followup(self) -> "FollowupMessage":
        return FollowupMessage(self.interaction)


class FollowupMessage:
    """A follow-up message sent on first edit and edited in place afterwards."""

    def __init__(self, interaction: discord.Interaction) -> None:
        self.interaction = interaction
        self._message: Optional[discord.WebhookMessage] = None

    async def edit(self, render: Render) -> None:
        if self._message is None:
            self._message = await self.interaction.followup.send(
                wait=True, **message_kwargs(render, edit=False)
            )
            return
        await self._message.edit(**message_kwargs(render, edit=True))

    def followup(self) -> "FollowupMessage":
        return FollowupMessage(self.interaction)


class ChannelMessage:
    """A public channel message, for sessions owned by someone other than the invoker."""

    def __init__(
        self,
        channel: discord.abc.Messageable,
        *,
        mention_user_ids: Iterable[int] = (),
    ) -> None:
        self.channel = channel
        self._message: Optional[discord.Message] = None
        self._mentions = discord.AllowedMentions(
            users=[discord.Object(id=user_id) for user_id in mention_user_ids]
        )

    async def edit(self, render: Render) -> None:
        if self._message is None:
            self._message = await self.channel.send(
                allowed_mentions=self._mentions, **message_kwargs(render, edit=False)
            )
            return
        await self._message.edit(
            allowed_mentions=discord.AllowedMentions.none(), **message_kwargs(render, edit=True)
        )

    def followup(self) -> "ChannelMessage":
        return ChannelMessage(self.channel)


def _modal_fields(components: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for row in components:
        children = list(row.get("components") or [])
        if row.get("component"):
            children.append(row["component"])
        if "custom_id" in row and "value" in row:
            children.append(row)
        for child in children:
            if "custom_id" in child and "value" in child:
                fields[child["custom_id"]] = child.get("value") or ""
    return fields


def event_from_interaction(interaction: discord.Interaction) -> Optional[InteractionEvent]:
    """Convert a component or modal interaction; ``None`` for anything else."""

    data: Dict[str, Any] = dict(interaction.data or {})
    custom_id = data.get("custom_id")
    if not custom_id:
        return None
    message_id = interaction.message.id if interaction.message is not None else None
    sink = DiscordRenderSink(interaction)
    if interaction.type == discord.InteractionType.component:
        component_type = data.get("component_type")
        kind = EventKind.SELECT if component_type == _COMPONENT_SELECT else EventKind.CLICK
        return InteractionEvent(
            kind=kind,
            actor_id=interaction.user.id,
            custom_id=custom_id,
            message_id=message_id,
            values=tuple(data.get("values") or ()),
            sink=sink,
        )
    if interaction.type == discord.InteractionType.modal_submit:
        return InteractionEvent(
            kind=EventKind.MODAL_SUBMIT,
            actor_id=interaction.user.id,
            custom_id=custom_id,
            message_id=message_id,
            fields=_modal_fields(data.get("components") or []),
            sink=sink,
        )
    return None


__all__ = [
    "ChannelMessage",
    "DiscordRenderSink",
    "FollowupMessage",
    "InteractionMessage",
    "event_from_interaction",
]
