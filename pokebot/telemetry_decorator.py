"""Records usage of the slash commands that open sessions."""
from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable

import discord

from .telemetry import get_telemetry

logger = logging.getLogger(__name__)


def _where(interaction: discord.Interaction) -> tuple[str, str]:
    guild = interaction.guild_id
    channel = getattr(interaction, "channel_id", None)
    return (
        str(guild) if guild else "dm",
        str(channel) if channel is not None else "dm",
    )


def track_command(func: Callable) -> Callable:
    """Time a slash command callback and record whether it raised."""
    command = func.__name__

    @functools.wraps(func)
    async def wrapper(interaction: discord.Interaction, *args: Any, **kwargs: Any) -> Any:
        collector = get_telemetry()
        user = str(interaction.user.id)
        guild, channel = _where(interaction)
        started = time.perf_counter()
        try:
            result = await func(interaction, *args, **kwargs)
        except Exception as exc:
            logger.warning("/%s failed for %s: %s", command, user, exc)
            collector.track_error(
                type(exc).__name__, command=command, player_id=user, error_details=str(exc)
            )
            collector.track_command(
                command,
                user,
                guild,
                success=False,
                duration_ms=(time.perf_counter() - started) * 1000,
                channel_id=channel,
            )
            raise
        collector.track_command(
            command,
            user,
            guild,
            success=True,
            duration_ms=(time.perf_counter() - started) * 1000,
            channel_id=channel,
        )
        return result

    return wrapper
