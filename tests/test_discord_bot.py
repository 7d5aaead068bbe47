"""Tests for the bot wiring: startup telemetry pruning and command tracking."""
import dataclasses
import sqlite3
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import discord
import pytest

from pokebot import discord_bot, telemetry_decorator
from pokebot.config import get_settings
from pokebot.telemetry import MetricType, TelemetryCollector
from pokebot.telemetry_decorator import track_command


def _interaction(user_id=7, guild_id=5, channel_id=9):
    return SimpleNamespace(
        user=SimpleNamespace(id=user_id), guild_id=guild_id, channel_id=channel_id
    )


@pytest.mark.asyncio
async def test_setup_hook_prunes_with_configured_retention(monkeypatch):
    """Startup removes metrics older than the configured window."""
    collector = Mock()
    collector.prune.return_value = 3
    monkeypatch.setattr(discord_bot, "get_telemetry", lambda: collector)
    settings = dataclasses.replace(get_settings(), telemetry_retention_days=7)

    bot = discord_bot.build_bot(
        settings=settings, backend=Mock(close=AsyncMock()), intents=discord.Intents.default()
    )
    await bot.setup_hook()

    assert bot.retention_days == 7
    collector.prune.assert_called_once_with(7)


@pytest.mark.asyncio
async def test_tracked_command_records_success(tmp_path: Path, monkeypatch):
    collector = TelemetryCollector(tmp_path / "telemetry.db")
    monkeypatch.setattr(telemetry_decorator, "get_telemetry", lambda: collector)

    @track_command
    async def pokepacks(interaction):
        return "ok"

    assert await pokepacks(_interaction()) == "ok"
    collector.flush()

    stats = collector.get_command_stats()
    assert stats["pokepacks"]["usage_count"] == 1
    assert stats["pokepacks"]["success_rate"] == pytest.approx(1.0)
    assert collector.get_error_summary() == {}


@pytest.mark.asyncio
async def test_tracked_command_records_failure_and_reraises(tmp_path: Path, monkeypatch):
    """A raising command is counted as failed and its error type is stored."""
    collector = TelemetryCollector(tmp_path / "telemetry.db")
    monkeypatch.setattr(telemetry_decorator, "get_telemetry", lambda: collector)

    @track_command
    async def pokeshop(interaction):
        raise RuntimeError("backend gone")

    with pytest.raises(RuntimeError):
        await pokeshop(_interaction(guild_id=None))
    collector.flush()

    assert collector.get_command_stats()["pokeshop"]["success_rate"] == pytest.approx(0.0)
    assert collector.get_error_summary() == {"RuntimeError": 1}
    with sqlite3.connect(collector.db_path) as conn:
        guild = conn.execute(
            "SELECT json_extract(tags, '$.guild_id') FROM metrics WHERE metric_type = ?",
            (MetricType.COMMAND_USAGE.value,),
        ).fetchone()[0]
    assert guild == "dm"
