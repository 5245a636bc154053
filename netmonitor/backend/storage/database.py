"""
storage/database.py

SQLite connection and schema initialisation for the NetMonitor record store.

Design decisions:
  - WAL journal mode for concurrent readers + one writer without blocking.
  - check_same_thread=False plus an RLock: the engine, the ingestion
    sources and the query API share one connection; every statement and
    its commit run under the lock so a thread executor can use it too.
  - busy_timeout=5000ms: instead of raising SQLITE_BUSY immediately, SQLite
    will spin-wait up to 5 seconds, allowing WAL readers to finish.
  - Timestamps are stored as REAL unix epoch seconds (UTC) so that window
    queries are plain numeric range scans.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

_CURRENT_SCHEMA_VERSION = 1


class Database:
    """
    Thin wrapper around a sqlite3 connection.

    Usage:
        db = Database("data/netmonitor.db")
        db.init_schema()
        # ... pass db to TrafficRepository ...
        db.close()
    """

    def __init__(self, db_path: str = "data/netmonitor.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row  # rows behave like dicts
        self.lock = threading.RLock()
        self._configure()
        logger.info("Database opened — path=%r", db_path)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _configure(self) -> None:
        """Apply performance and safety PRAGMAs."""
        cur = self.conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        cur.execute("PRAGMA foreign_keys=ON")
        cur.execute("PRAGMA busy_timeout=5000")
        cur.execute("PRAGMA synchronous=NORMAL")  # safe with WAL
        self.conn.commit()

    # ------------------------------------------------------------------
    # Schema initialisation
    # ------------------------------------------------------------------

    def init_schema(self) -> None:
        """Create all tables and indexes if they don't already exist."""
        with self.lock:
            cur = self.conn.cursor()
            cur.executescript("""
                CREATE TABLE IF NOT EXISTS network_logs (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp        REAL NOT NULL,
                    source_ip        TEXT NOT NULL,
                    destination_ip   TEXT,
                    destination_host TEXT,
                    destination_port INTEGER,
                    protocol         TEXT NOT NULL,
                    action           TEXT NOT NULL
                                     CHECK (action IN ('ALLOW', 'BLOCK', 'DENY')),
                    data_size        INTEGER NOT NULL DEFAULT 0 CHECK (data_size >= 0),
                    duration         INTEGER,
                    metadata         TEXT NOT NULL DEFAULT '{}'
                );

                CREATE TABLE IF NOT EXISTS alerts (
                    id           INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp    REAL NOT NULL,
                    severity     TEXT NOT NULL,
                    type         TEXT NOT NULL,
                    title        TEXT NOT NULL,
                    description  TEXT NOT NULL,
                    source_ip    TEXT,
                    is_resolved  INTEGER NOT NULL DEFAULT 0,
                    resolved_at  REAL,
                    metadata     TEXT NOT NULL DEFAULT '{}'
                );

                CREATE TABLE IF NOT EXISTS connections (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    start_time       REAL NOT NULL,
                    end_time         REAL,
                    source_ip        TEXT NOT NULL,
                    destination_host TEXT NOT NULL,
                    destination_ip   TEXT,
                    destination_port INTEGER,
                    protocol         TEXT NOT NULL,
                    total_data_size  INTEGER NOT NULL DEFAULT 0,
                    connection_count INTEGER NOT NULL DEFAULT 1,
                    is_active        INTEGER NOT NULL DEFAULT 1,
                    last_activity    REAL NOT NULL
                );

                CREATE TABLE IF NOT EXISTS traffic_metrics (
                    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp             REAL NOT NULL,
                    total_traffic         TEXT NOT NULL DEFAULT '0',
                    active_connections    INTEGER NOT NULL DEFAULT 0,
                    blocked_requests      INTEGER NOT NULL DEFAULT 0,
                    protocol_distribution TEXT NOT NULL DEFAULT '{}',
                    top_destinations      TEXT NOT NULL DEFAULT '{}'
                );

                CREATE TABLE IF NOT EXISTS schema_version (
                    version    INTEGER PRIMARY KEY,
                    applied_at REAL NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_logs_timestamp
                    ON network_logs(timestamp DESC);
                CREATE INDEX IF NOT EXISTS idx_logs_source_ip
                    ON network_logs(source_ip);
                CREATE INDEX IF NOT EXISTS idx_alerts_timestamp
                    ON alerts(timestamp DESC);
                CREATE INDEX IF NOT EXISTS idx_alerts_resolved
                    ON alerts(is_resolved);
                CREATE INDEX IF NOT EXISTS idx_connections_active
                    ON connections(is_active);
                CREATE INDEX IF NOT EXISTS idx_metrics_timestamp
                    ON traffic_metrics(timestamp DESC);
            """)

            # Record schema version (ignore if already present)
            cur.execute(
                "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                (_CURRENT_SCHEMA_VERSION, time.time()),
            )
            self.conn.commit()
        logger.info("Schema initialised (version=%d)", _CURRENT_SCHEMA_VERSION)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Flush and close the SQLite connection."""
        try:
            with self.lock:
                self.conn.commit()
                self.conn.close()
            logger.info("Database closed — path=%r", self.db_path)
        except sqlite3.Error as exc:
            logger.warning("Error closing database: %s", exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a group of statements atomically.

        Commits on success, rolls back and re-raises on any error.
        """
        with self.lock:
            try:
                yield self.conn
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

    def fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self.lock:
            return self.conn.execute(sql, params).fetchall()

    def fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        with self.lock:
            return self.conn.execute(sql, params).fetchone()
