"""Telemetry for commands and interactive sessions."""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class MetricType(Enum):
    """Types of metrics tracked."""
    COMMAND_USAGE = "command_usage"
    SESSION_OUTCOME = "session_outcome"
    ERROR_RATE = "error_rate"
    PERFORMANCE = "performance"


@dataclass
class MetricEvent:
    """Individual metric event."""
    timestamp: float
    metric_type: MetricType
    name: str
    value: float
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class TelemetryCollector:
    """Buffers metric events and stores them in a SQLite database."""

    def __init__(self, db_path: Optional[Path] = None, flush_interval: float = 60):
        self.db_path = db_path or Path("telemetry.db")
        self._init_database()
        self._metrics_buffer: List[MetricEvent] = []
        self._flush_interval = flush_interval
        self._last_flush = time.time()

    def _init_database(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS metrics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    metric_type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    value REAL NOT NULL,
                    tags TEXT,
                    metadata TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_metrics_type_name
                ON metrics(metric_type, name)
            """)
            conn.commit()

    def track_command(
        self,
        command_name: str,
        player_id: str,
        guild_id: str,
        success: bool = True,
        duration_ms: Optional[float] = None,
        channel_id: Optional[str] = None,
    ):
        """Track slash command usage."""
        tags = {
            "player_id": player_id,
            "guild_id": guild_id,
            "success": str(success),
        }
        if channel_id:
            tags["channel_id"] = channel_id

        self.record(
            MetricType.COMMAND_USAGE,
            command_name,
            1.0,
            tags=tags,
            metadata={"duration_ms": duration_ms} if duration_ms else {}
        )

    def track_session_outcome(
        self,
        flow: str,
        state: str,
        player_id: Optional[str] = None,
        success: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Track how an interactive session ended (resolved, cancelled, expired)."""
        tags = {"state": state, "success": str(success)}
        if player_id:
            tags["player_id"] = player_id

        self.record(
            MetricType.SESSION_OUTCOME,
            flow,
            1.0,
            tags=tags,
            metadata=details or {}
        )

    def track_error(
        self,
        error_type: str,
        command: Optional[str] = None,
        player_id: Optional[str] = None,
        error_details: Optional[str] = None
    ):
        """Track errors and failures."""
        tags = {}
        if command:
            tags["command"] = command
        if player_id:
            tags["player_id"] = player_id

        self.record(
            MetricType.ERROR_RATE,
            error_type,
            1.0,
            tags=tags,
            metadata={"error_details": error_details} if error_details else {}
        )

    def track_performance(
        self,
        operation: str,
        duration_ms: float,
        tags: Optional[Dict[str, str]] = None
    ):
        self.record(
            MetricType.PERFORMANCE,
            operation,
            duration_ms,
            tags=tags or {},
            metadata={"unit": "milliseconds"}
        )

    def record(
        self,
        metric_type: MetricType,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """Record a metric event."""
        event = MetricEvent(
            timestamp=time.time(),
            metric_type=metric_type,
            name=name,
            value=value,
            tags=tags or {},
            metadata=metadata or {}
        )

        self._metrics_buffer.append(event)

        if len(self._metrics_buffer) >= 100 or \
           time.time() - self._last_flush > self._flush_interval:
            self.flush()

    def flush(self):
        """Flush buffered metrics to database."""
        if not self._metrics_buffer:
            return

        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.executemany("""
                    INSERT INTO metrics
                    (timestamp, metric_type, name, value, tags, metadata)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, [
                    (
                        event.timestamp,
                        event.metric_type.value,
                        event.name,
                        event.value,
                        json.dumps(event.tags),
                        json.dumps(event.metadata, default=str),
                    )
                    for event in self._metrics_buffer
                ])
                conn.commit()

            logger.debug("Flushed %d metrics to database", len(self._metrics_buffer))
            self._metrics_buffer.clear()
            self._last_flush = time.time()

        except sqlite3.Error as e:
            logger.error("Failed to flush metrics: %s", e)

    def get_command_stats(
        self,
        start_time: Optional[float] = None,
        end_time: Optional[float] = None
    ) -> Dict[str, Dict[str, Any]]:
        """Get command usage statistics."""
        query = """
            SELECT
                name as command,
                COUNT(*) as usage_count,
                AVG(CASE WHEN json_extract(tags, '$.success') = 'True'
                    THEN 1 ELSE 0 END) as success_rate,
                COUNT(DISTINCT json_extract(tags, '$.player_id')) as unique_players
            FROM metrics
            WHERE metric_type = ?
        """
        params: List[Any] = [MetricType.COMMAND_USAGE.value]

        if start_time:
            query += " AND timestamp >= ?"
            params.append(start_time)
        if end_time:
            query += " AND timestamp <= ?"
            params.append(end_time)

        query += " GROUP BY name"

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, params)
            results = {}
            for row in cursor.fetchall():
                results[row[0]] = {
                    "usage_count": row[1],
                    "success_rate": row[2],
                    "unique_players": row[3]
                }
            return results

    def get_session_outcomes(self, hours: int = 24) -> Dict[str, Dict[str, int]]:
        """Per-flow counts of terminal states over the last N hours."""
        start_time = time.time() - (hours * 3600)

        query = """
            SELECT name, json_extract(tags, '$.state') as state, COUNT(*)
            FROM metrics
            WHERE metric_type = ? AND timestamp >= ?
            GROUP BY name, state
        """

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, [MetricType.SESSION_OUTCOME.value, start_time])
            results: Dict[str, Dict[str, int]] = {}
            for flow, state, count in cursor.fetchall():
                results.setdefault(flow, {})[state] = count
            return results

    def get_error_summary(
        self,
        hours: int = 24
    ) -> Dict[str, int]:
        """Get error counts for the last N hours."""
        start_time = time.time() - (hours * 3600)

        query = """
            SELECT name, COUNT(*) as error_count
            FROM metrics
            WHERE metric_type = ? AND timestamp >= ?
            GROUP BY name
            ORDER BY error_count DESC
        """

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, [
                MetricType.ERROR_RATE.value,
                start_time
            ])
            return {row[0]: row[1] for row in cursor.fetchall()}

    def prune(self, days_to_keep: int = 30, now: Optional[float] = None) -> int:
        """Drop stored metrics older than the retention window.

        Buffered events are written first so they are judged by the same cutoff.
        """
        self.flush()
        cutoff = (now if now is not None else time.time()) - days_to_keep * 86400
        with sqlite3.connect(self.db_path) as conn:
            deleted = conn.execute("DELETE FROM metrics WHERE timestamp < ?", (cutoff,)).rowcount
        if deleted:
            logger.info("Pruned %d metric events older than %d days", deleted, days_to_keep)
        return deleted


# Singleton instance
_telemetry: Optional[TelemetryCollector] = None


def get_telemetry() -> TelemetryCollector:
    """Get or create singleton telemetry collector."""
    global _telemetry
    if _telemetry is None:
        db_path = os.getenv("POKEBOT_TELEMETRY_DB")
        _telemetry = TelemetryCollector(Path(db_path) if db_path else None)
    return _telemetry


__all__ = ["MetricEvent", "MetricType", "TelemetryCollector", "get_telemetry"]
