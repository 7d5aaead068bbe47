"""Tests for YAML settings loading."""
import pytest

from pokebot.config import Settings, SettingsLoader, get_settings


def test_default_settings_load():
    settings = get_settings()
    assert settings.default_timing.page_size == 25
    assert settings.default_timing.hard_timeout < 900
    assert settings.timing("cards").page_size == 1
    assert settings.timing("sell_duplicates").idle_timeout == 120
    assert settings.battle_expiry == 120
    assert settings.collection_limit == 500
    assert settings.telemetry_retention_days == 30


def test_unknown_flow_uses_defaults():
    settings = Settings.from_dict({"sessions": {"page_size": 5, "idle_timeout_seconds": 30}})
    timing = settings.timing("nope")
    assert timing.page_size == 5
    assert timing.idle_timeout == 30
    assert timing.hard_timeout == 840


def test_flow_overrides_inherit_missing_values():
    settings = Settings.from_dict(
        {"sessions": {"modal_timeout_seconds": 45}, "flows": {"shop": {"page_size": 15}}}
    )
    assert settings.timing("shop").page_size == 15
    assert settings.timing("shop").modal_timeout == 45


def test_page_size_bounds_are_validated():
    with pytest.raises(ValueError):
        Settings.from_dict({"flows": {"shop": {"page_size": 30}}})


def test_settings_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "settings.yaml"
    path.write_text("sessions:\n  page_size: 4\nbackend:\n  timeout_seconds: 3\n", encoding="utf-8")
    monkeypatch.setenv("POKEBOT_SETTINGS", str(path))

    loader = SettingsLoader()
    settings = loader.load()
    assert loader.path == path
    assert settings.default_timing.page_size == 4
    assert settings.backend_timeout == 3
    assert loader.load() is settings
