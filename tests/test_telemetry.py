"""Tests for telemetry and metrics tracking."""
import sqlite3
import time
from pathlib import Path

import pytest

from pokebot import telemetry as telemetry_module
from pokebot.telemetry import MetricEvent, MetricType, TelemetryCollector, get_telemetry


def test_metric_event_creation():
    """Test MetricEvent dataclass creation."""
    event = MetricEvent(
        timestamp=time.time(),
        metric_type=MetricType.SESSION_OUTCOME,
        name="sell_duplicates",
        value=1.0,
        tags={"state": "resolved"},
        metadata={"quantity": 2},
    )

    assert event.metric_type == MetricType.SESSION_OUTCOME
    assert event.tags["state"] == "resolved"
    assert event.metadata["quantity"] == 2


def test_collector_creates_database(tmp_path: Path):
    db_path = tmp_path / "telemetry.db"
    collector = TelemetryCollector(db_path)

    assert collector.db_path == db_path
    assert db_path.exists()
    assert collector._metrics_buffer == []


def test_session_outcomes_grouped_by_flow_and_state(tmp_path: Path):
    """Terminal states are counted per flow once flushed."""
    collector = TelemetryCollector(tmp_path / "telemetry.db")

    collector.track_session_outcome("packs", "resolved", player_id="1", success=True)
    collector.track_session_outcome("packs", "resolved", player_id="2", success=True)
    collector.track_session_outcome("packs", "expired", player_id="1")
    collector.track_session_outcome("shop", "cancelled")
    assert collector.get_session_outcomes() == {}

    collector.flush()

    assert collector._metrics_buffer == []
    assert collector.get_session_outcomes() == {
        "packs": {"resolved": 2, "expired": 1},
        "shop": {"cancelled": 1},
    }


def test_command_stats(tmp_path: Path):
    collector = TelemetryCollector(tmp_path / "telemetry.db")

    collector.track_command("pokepacks", "1", "guild", success=True, duration_ms=12.5)
    collector.track_command("pokepacks", "2", "guild", success=False)
    collector.track_command("pokeshop", "1", "dm", success=True, channel_id="chan")
    collector.flush()

    stats = collector.get_command_stats()
    assert stats["pokepacks"]["usage_count"] == 2
    assert stats["pokepacks"]["success_rate"] == pytest.approx(0.5)
    assert stats["pokepacks"]["unique_players"] == 2
    assert stats["pokeshop"]["usage_count"] == 1


def test_error_summary_and_performance(tmp_path: Path):
    collector = TelemetryCollector(tmp_path / "telemetry.db")

    collector.track_error("BackendError", command="pokeopen", player_id="1", error_details="boom")
    collector.track_error("BackendError")
    collector.track_error("interaction_failure")
    collector.track_performance("packs.submit", 42.0, {"flow": "packs"})
    collector.flush()

    assert collector.get_error_summary() == {"BackendError": 2, "interaction_failure": 1}
    with sqlite3.connect(collector.db_path) as conn:
        row = conn.execute(
            "SELECT name, value FROM metrics WHERE metric_type = ?",
            (MetricType.PERFORMANCE.value,),
        ).fetchone()
    assert row == ("packs.submit", 42.0)


def test_buffer_flushes_automatically(tmp_path: Path):
    collector = TelemetryCollector(tmp_path / "telemetry.db")

    for index in range(100):
        collector.track_session_outcome("pokedex", "cancelled", player_id=str(index))

    assert collector._metrics_buffer == []
    assert collector.get_session_outcomes()["pokedex"]["cancelled"] == 100


def test_prune_drops_metrics_past_retention(tmp_path: Path):
    """Rows older than the window go; buffered events are flushed first."""
    collector = TelemetryCollector(tmp_path / "telemetry.db")
    collector.track_session_outcome("shop", "resolved")
    collector.track_session_outcome("shop", "expired")
    collector.flush()
    with sqlite3.connect(collector.db_path) as conn:
        conn.execute(
            "UPDATE metrics SET timestamp = timestamp - ? WHERE json_extract(tags, '$.state') = 'expired'",
            (40 * 86400,),
        )
        conn.commit()

    collector.track_session_outcome("shop", "cancelled")

    assert collector.prune(days_to_keep=30) == 1
    assert collector._metrics_buffer == []
    assert collector.get_session_outcomes() == {"shop": {"resolved": 1, "cancelled": 1}}


def test_prune_with_reference_time(tmp_path: Path):
    collector = TelemetryCollector(tmp_path / "telemetry.db")
    collector.track_error("BackendError")
    collector.flush()

    assert collector.prune(days_to_keep=1, now=time.time() + 2 * 86400) == 1
    assert collector.get_error_summary() == {}


def test_get_telemetry_uses_environment_path(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "env.db"
    monkeypatch.setenv("POKEBOT_TELEMETRY_DB", str(db_path))
    monkeypatch.setattr(telemetry_module, "_telemetry", None)

    collector = get_telemetry()

    assert collector.db_path == db_path
    assert get_telemetry() is collector
