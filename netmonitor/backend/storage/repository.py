"""
storage/repository.py

TrafficRepository — the record store for logs, alerts, connections and
traffic metrics.

Writes validate through the record dataclasses (RecordValidationError) and
run inside Database.transaction(); sqlite3 errors propagate to the caller.
Background callers catch and log them, request handlers surface them.
Ids and timestamps are assigned here, never by producers.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable

from ..models import (
    CONNECTION_UPDATABLE_FIELDS,
    Alert,
    Connection,
    RecordValidationError,
    TrafficLog,
    TrafficMetric,
    utcnow,
)
from .database import Database

logger = logging.getLogger(__name__)

_MAX_PAGE = 1_000


class TrafficRepository:
    """
    Args:
        db:    Initialised Database.
        clock: Returns the current UTC datetime; injectable for tests.
    """

    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow) -> None:
        self._db = db
        self._clock = clock

    # ==================================================================
    # Traffic logs
    # ==================================================================

    def create_log(self, log: TrafficLog) -> TrafficLog:
        now = self._clock()
        with self._db.transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO network_logs (
                    timestamp, source_ip, destination_ip, destination_host,
                    destination_port, protocol, action, data_size, duration, metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    now.timestamp(),
                    log.source_ip,
                    log.destination_ip,
                    log.destination_host,
                    log.destination_port,
                    log.protocol,
                    log.action.value,
                    log.data_size,
                    log.duration,
                    _dump(log.metadata),
                ),
            )
            log_id = cur.lastrowid
        return replace(log, id=log_id, timestamp=now)

    def get_logs(self, limit: int = 50, offset: int = 0) -> list[TrafficLog]:
        """Most recent logs, newest first."""
        rows = self._db.fetchall(
            """
            SELECT * FROM network_logs
            ORDER BY timestamp DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (min(limit, _MAX_PAGE), offset),
        )
        return [_row_to_log(r) for r in rows]

    def get_logs_by_time_range(self, start: datetime, end: datetime) -> list[TrafficLog]:
        """Logs with start <= timestamp <= end, newest first."""
        rows = self._db.fetchall(
            """
            SELECT * FROM network_logs
            WHERE timestamp >= ? AND timestamp <= ?
            ORDER BY timestamp DESC, id DESC
            """,
            (start.timestamp(), end.timestamp()),
        )
        return [_row_to_log(r) for r in rows]

    def search_logs(self, query: str, limit: int = 50) -> list[TrafficLog]:
        """Case-insensitive substring match over source IP, destination host and IP."""
        needle = query.lower()
        rows = self._db.fetchall(
            """
            SELECT * FROM network_logs
            WHERE instr(lower(source_ip), ?) > 0
               OR instr(lower(coalesce(destination_host, '')), ?) > 0
               OR instr(lower(coalesce(destination_ip, '')), ?) > 0
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (needle, needle, needle, min(limit, _MAX_PAGE)),
        )
        return [_row_to_log(r) for r in rows]

    # ==================================================================
    # Alerts
    # ==================================================================

    def create_alert(self, alert: Alert) -> Alert:
        now = self._clock()
        with self._db.transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO alerts (
                    timestamp, severity, type, title, description,
                    source_ip, is_resolved, resolved_at, metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    now.timestamp(),
                    alert.severity.value,
                    alert.type,
                    alert.title,
                    alert.description,
                    alert.source_ip,
                    int(alert.is_resolved),
                    alert.resolved_at.timestamp() if alert.resolved_at else None,
                    _dump(alert.metadata),
                ),
            )
            alert_id = cur.lastrowid
        return replace(alert, id=alert_id, timestamp=now)

    def get_alerts(self, limit: int = 50) -> list[Alert]:
        rows = self._db.fetchall(
            "SELECT * FROM alerts ORDER BY timestamp DESC, id DESC LIMIT ?",
            (min(limit, _MAX_PAGE),),
        )
        return [_row_to_alert(r) for r in rows]

    def get_active_alerts(self) -> list[Alert]:
        """All unresolved alerts, newest first."""
        rows = self._db.fetchall(
            "SELECT * FROM alerts WHERE is_resolved = 0 ORDER BY timestamp DESC, id DESC"
        )
        return [_row_to_alert(r) for r in rows]

    def get_alert_by_id(self, alert_id: int) -> Alert | None:
        row = self._db.fetchone("SELECT * FROM alerts WHERE id = ?", (alert_id,))
        return _row_to_alert(row) if row else None

    def count_active_alerts(self) -> int:
        row = self._db.fetchone("SELECT COUNT(*) FROM alerts WHERE is_resolved = 0")
        return row[0] if row else 0

    def resolve_alert(self, alert_id: int) -> Alert | None:
        """
        Mark an alert resolved.

        Only the first call sets resolved_at; resolving an already-resolved
        alert leaves it untouched. Returns None for an unknown id.
        """
        with self._db.transaction() as conn:
            conn.execute(
                "UPDATE alerts SET is_resolved = 1, resolved_at = ? "
                "WHERE id = ? AND is_resolved = 0",
                (self._clock().timestamp(), alert_id),
            )
            row = conn.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,)).fetchone()
        return _row_to_alert(row) if row else None

    # ==================================================================
    # Connections
    # ==================================================================

    def create_connection(self, connection: Connection) -> Connection:
        now = self._clock()
        with self._db.transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO connections (
                    start_time, end_time, source_ip, destination_host,
                    destination_ip, destination_port, protocol,
                    total_data_size, connection_count, is_active, last_activity
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    now.timestamp(),
                    connection.end_time.timestamp() if connection.end_time else None,
                    connection.source_ip,
                    connection.destination_host,
                    connection.destination_ip,
                    connection.destination_port,
                    connection.protocol,
                    connection.total_data_size,
                    connection.connection_count,
                    int(connection.is_active),
                    now.timestamp(),
                ),
            )
            conn_id = cur.lastrowid
        return replace(connection, id=conn_id, start_time=now, last_activity=now)

    def update_connection(self, connection_id: int, **fields: Any) -> Connection | None:
        """
        Partial in-place update. Returns the updated record or None if unknown.

        Inactive is terminal. Raises RecordValidationError for unknown fields,
        for reactivating or changing the counters of an inactive connection,
        or for shrinking total_data_size.
        """
        unknown = set(fields) - CONNECTION_UPDATABLE_FIELDS
        if unknown:
            raise RecordValidationError(f"cannot update connection fields: {sorted(unknown)}")

        now = self._clock()
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM connections WHERE id = ?", (connection_id,)
            ).fetchone()
            if row is None:
                return None
            current = _row_to_connection(row)

            fields.setdefault("last_activity", now)
            if fields.get("is_active") is False and current.is_active:
                fields.setdefault("end_time", now)
            updated = replace(current, **fields)

            if not current.is_active:
                if updated.is_active:
                    raise RecordValidationError(
                        f"connection {connection_id} is inactive and cannot be reactivated"
                    )
                for name in ("total_data_size", "connection_count"):
                    if getattr(updated, name) != getattr(current, name):
                        raise RecordValidationError(
                            f"connection {connection_id} is inactive; {name} is frozen"
                        )
            elif updated.total_data_size < current.total_data_size:
                raise RecordValidationError("total_data_size may not decrease")

            conn.execute(
                """
                UPDATE connections SET
                    end_time = ?, destination_ip = ?, destination_port = ?,
                    total_data_size = ?, connection_count = ?, is_active = ?,
                    last_activity = ?
                WHERE id = ?
                """,
                (
                    updated.end_time.timestamp() if updated.end_time else None,
                    updated.destination_ip,
                    updated.destination_port,
                    updated.total_data_size,
                    updated.connection_count,
                    int(updated.is_active),
                    updated.last_activity.timestamp(),
                    connection_id,
                ),
            )
        return updated

    def get_active_connections(self) -> list[Connection]:
        rows = self._db.fetchall(
            "SELECT * FROM connections WHERE is_active = 1 ORDER BY last_activity DESC, id DESC"
        )
        return [_row_to_connection(r) for r in rows]

    def get_top_connections(self, limit: int = 10) -> list[Connection]:
        """Connections ranked by cumulative data size."""
        rows = self._db.fetchall(
            "SELECT * FROM connections ORDER BY total_data_size DESC, id ASC LIMIT ?",
            (min(limit, _MAX_PAGE),),
        )
        return [_row_to_connection(r) for r in rows]

    # ==================================================================
    # Traffic metrics
    # ==================================================================

    def create_metric(self, metric: TrafficMetric) -> TrafficMetric:
        now = self._clock()
        with self._db.transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO traffic_metrics (
                    timestamp, total_traffic, active_connections, blocked_requests,
                    protocol_distribution, top_destinations
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    now.timestamp(),
                    metric.total_traffic,
                    metric.active_connections,
                    metric.blocked_requests,
                    _dump(metric.protocol_distribution),
                    _dump(metric.top_destinations),
                ),
            )
            metric_id = cur.lastrowid
        return replace(metric, id=metric_id, timestamp=now)

    def get_latest_metric(self) -> TrafficMetric | None:
        row = self._db.fetchone(
            "SELECT * FROM traffic_metrics ORDER BY timestamp DESC, id DESC LIMIT 1"
        )
        return _row_to_metric(row) if row else None

    def get_metrics_by_time_range(self, start: datetime, end: datetime) -> list[TrafficMetric]:
        rows = self._db.fetchall(
            """
            SELECT * FROM traffic_metrics
            WHERE timestamp >= ? AND timestamp <= ?
            ORDER BY timestamp DESC, id DESC
            """,
            (start.timestamp(), end.timestamp()),
        )
        return [_row_to_metric(r) for r in rows]

    # ==================================================================
    # Dashboard
    # ==================================================================

    def get_dashboard_stats(self) -> dict:
        """Latest metric figures plus the live unresolved-alert count."""
        latest = self.get_latest_metric()
        return {
            "total_traffic":      latest.total_traffic if latest else "0",
            "active_connections": latest.active_connections if latest else 0,
            "blocked_requests":   latest.blocked_requests if latest else 0,
            "active_alerts":      self.count_active_alerts(),
        }


# ======================================================================
# Row mapping helpers
# ======================================================================

def _dump(value: dict | None) -> str:
    try:
        return json.dumps(value or {}, default=str)
    except (TypeError, ValueError) as exc:
        logger.error("metadata not JSON-serializable: %s", exc)
        return json.dumps({"error": "non-serializable metadata"})


def _load(raw: str | None) -> dict:
    try:
        value = json.loads(raw or "{}")
    except (TypeError, json.JSONDecodeError):
        return {}
    return value if isinstance(value, dict) else {}


def _ts(value: float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _row_to_log(row: Any) -> TrafficLog:
    return TrafficLog(
        id=row["id"],
        timestamp=_ts(row["timestamp"]),
        source_ip=row["source_ip"],
        destination_ip=row["destination_ip"],
        destination_host=row["destination_host"],
        destination_port=row["destination_port"],
        protocol=row["protocol"],
        action=row["action"],
        data_size=row["data_size"],
        duration=row["duration"],
        metadata=_load(row["metadata"]),
    )


def _row_to_alert(row: Any) -> Alert:
    return Alert(
        id=row["id"],
        timestamp=_ts(row["timestamp"]),
        severity=row["severity"],
        type=row["type"],
        title=row["title"],
        description=row["description"],
        source_ip=row["source_ip"],
        is_resolved=bool(row["is_resolved"]),
        resolved_at=_ts(row["resolved_at"]),
        metadata=_load(row["metadata"]),
    )


def _row_to_connection(row: Any) -> Connection:
    return Connection(
        id=row["id"],
        start_time=_ts(row["start_time"]),
        end_time=_ts(row["end_time"]),
        source_ip=row["source_ip"],
        destination_host=row["destination_host"],
        destination_ip=row["destination_ip"],
        destination_port=row["destination_port"],
        protocol=row["protocol"],
        total_data_size=row["total_data_size"],
        connection_count=row["connection_count"],
        is_active=bool(row["is_active"]),
        last_activity=_ts(row["last_activity"]),
    )


def _row_to_metric(row: Any) -> TrafficMetric:
    return TrafficMetric(
        id=row["id"],
        timestamp=_ts(row["timestamp"]),
        total_traffic=row["total_traffic"],
        active_connections=row["active_connections"],
        blocked_requests=row["blocked_requests"],
        protocol_distribution=_load(row["protocol_distribution"]),
        top_destinations=_load(row["top_destinations"]),
    )
