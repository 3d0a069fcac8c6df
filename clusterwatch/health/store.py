"""Status store — persisted cluster status + status-change events in SQLite.

One row per cluster holds the whole status document; a write replaces it in a
single statement so readers never see a half-updated record.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from clusterwatch.config import settings
from clusterwatch.health.models import ClusterStatus

logger = logging.getLogger(__name__)

DB_PATH = Path(settings.db_path)


class PersistenceError(Exception):
    """Raised when a cluster status could not be written."""


class EventSeverity(str, Enum):
    NORMAL = "Normal"
    WARNING = "Warning"


@dataclass
class ClusterEvent:
    """A recorded status-change notification for one cluster."""

    cluster_id: str
    severity: EventSeverity
    reason: str
    message: str
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict[str, Any]:
        return {
            "cluster_id": self.cluster_id,
            "severity": self.severity.value,
            "reason": self.reason,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class StatusStore:
    """SQLite-backed storage for cluster status records + events."""

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or DB_PATH
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS cluster_status (
                cluster_id TEXT PRIMARY KEY,
                version INTEGER NOT NULL,
                phase TEXT NOT NULL,
                ready TEXT NOT NULL,
                status TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS cluster_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                cluster_id TEXT NOT NULL,
                severity TEXT NOT NULL,
                reason TEXT NOT NULL,
                message TEXT NOT NULL,
                timestamp TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_cluster
                ON cluster_events (cluster_id, timestamp DESC);
        """)
        conn.commit()

    def read_status(self, cluster_id: str) -> ClusterStatus | None:
        """Return the persisted status of a cluster, or None if never written."""
        row = self._get_conn().execute(
            "SELECT status FROM cluster_status WHERE cluster_id = ?", (cluster_id,),
        ).fetchone()
        if not row:
            return None
        return ClusterStatus.from_dict(json.loads(row["status"]))

    def write_status(self, cluster_id: str, status: ClusterStatus) -> None:
        """Replace the stored status of a cluster as one atomic upsert."""
        conn = self._get_conn()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO cluster_status (cluster_id, version, phase, ready, status, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(cluster_id) DO UPDATE SET "
                    "version = excluded.version, phase = excluded.phase, ready = excluded.ready, "
                    "status = excluded.status, updated_at = excluded.updated_at",
                    (
                        cluster_id, status.version, status.phase.value, status.ready,
                        json.dumps(status.to_dict()),
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to write status for cluster {cluster_id}: {e}") from e

    def emit_event(
        self,
        cluster_id: str,
        severity: EventSeverity,
        message: str,
        reason: str = "ChangedStatus",
    ) -> ClusterEvent:
        """Record a status-change event for a cluster."""
        event = ClusterEvent(cluster_id=cluster_id, severity=severity, reason=reason, message=message)
        conn = self._get_conn()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO cluster_events (cluster_id, severity, reason, message, timestamp) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (event.cluster_id, event.severity.value, event.reason, event.message, event.timestamp),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to record event for cluster {cluster_id}: {e}") from e
        return event

    def get_all_statuses(self) -> dict[str, dict[str, Any]]:
        """Latest status document per cluster, plus its write time."""
        rows = self._get_conn().execute(
            "SELECT cluster_id, status, updated_at FROM cluster_status ORDER BY cluster_id",
        ).fetchall()
        result: dict[str, dict[str, Any]] = {}
        for r in rows:
            doc = json.loads(r["status"])
            doc["updated_at"] = r["updated_at"]
            result[r["cluster_id"]] = doc
        return result

    def get_events(self, cluster_id: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        """Get recent events, newest first, optionally filtered by cluster."""
        if cluster_id:
            rows = self._get_conn().execute(
                "SELECT * FROM cluster_events WHERE cluster_id = ? "
                "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (cluster_id, limit),
            ).fetchall()
        else:
            rows = self._get_conn().execute(
                "SELECT * FROM cluster_events ORDER BY timestamp DESC, id DESC LIMIT ?", (limit,),
            ).fetchall()
        return [dict(r) for r in rows]

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
