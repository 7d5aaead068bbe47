"""Discord adapter: converts engine renders into discord.py objects and back."""

from __future__ import annotations

from .builders import build_embed, build_modal, build_view, message_kwargs
from .handlers import (
    ChannelMessage,
    DiscordRenderSink,
    FollowupMessage,
    InteractionMessage,
    event_from_interaction,
)

__all__ = [
    "ChannelMessage",
    "DiscordRenderSink",
    "FollowupMessage",
    "InteractionMessage",
    "build_embed",
    "build_modal",
    "build_view",
    "event_from_interaction",
    "message_kwargs",
]
