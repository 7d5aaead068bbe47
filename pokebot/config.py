"""Configuration loading utilities for the bot."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml


DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"


@dataclass(frozen=True)
class FlowTiming:
    """Paging and timeout budget for one command flow."""

    page_size: int
    idle_timeout: float
    hard_timeout: float
    modal_timeout: float


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    default_timing: FlowTiming
    flow_timings: Dict[str, FlowTiming]
    tombstone_ttl: float
    backend_timeout: float
    collection_limit: int
    battle_expiry: float
    telemetry_retention_days: int

    def timing(self, flow: str) -> FlowTiming:
        return self.flow_timings.get(flow, self.default_timing)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        sessions_cfg = data.get("sessions", {})
        default = FlowTiming(
            page_size=int(sessions_cfg.get("page_size", 25)),
            idle_timeout=float(sessions_cfg.get("idle_timeout_seconds", 120)),
            hard_timeout=float(sessions_cfg.get("hard_timeout_seconds", 840)),
            modal_timeout=float(sessions_cfg.get("modal_timeout_seconds", 60)),
        )
        flow_timings: Dict[str, FlowTiming] = {}
        for name, cfg in (data.get("flows") or {}).items():
            cfg = cfg or {}
            flow_timings[name] = FlowTiming(
                page_size=int(cfg.get("page_size", default.page_size)),
                idle_timeout=float(cfg.get("idle_timeout_seconds", default.idle_timeout)),
                hard_timeout=float(cfg.get("hard_timeout_seconds", default.hard_timeout)),
                modal_timeout=float(cfg.get("modal_timeout_seconds", default.modal_timeout)),
            )
        for name, timing in flow_timings.items():
            if not 1 <= timing.page_size <= 25:
                raise ValueError(f"page_size for {name} must be between 1 and 25")
        backend_cfg = data.get("backend", {})
        proposals_cfg = data.get("proposals", {})
        telemetry_cfg = data.get("telemetry", {})
        return Settings(
            default_timing=default,
            flow_timings=flow_timings,
            tombstone_ttl=float(sessions_cfg.get("tombstone_ttl_seconds", 900)),
            backend_timeout=float(backend_cfg.get("timeout_seconds", 15)),
            collection_limit=int(backend_cfg.get("collection_limit", 500)),
            battle_expiry=float(proposals_cfg.get("battle_expiry_seconds", 120)),
            telemetry_retention_days=int(telemetry_cfg.get("retention_days", 30)),
        )


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None) -> None:
        env_path = os.environ.get("POKEBOT_SETTINGS")
        self._path = path or (Path(env_path) if env_path else DEFAULT_SETTINGS_PATH)
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        with self._path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        self._cache = Settings.from_dict(data)
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


__all__ = ["FlowTiming", "Settings", "SettingsLoader", "get_settings"]
