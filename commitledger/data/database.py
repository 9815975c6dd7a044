"""
SQLite database initialization and connection management.

Single responsibility: own the connection, create tables, track the data
version. All actual queries live in Repository.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Default DB lives next to the repo root
DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "commitledger.db"

CURRENT_VERSION = "1.1"

SCHEMA_SQL = """
-- Sessions ------------------------------------------------------------------
-- document holds the full wire-format JSON so opaque fields round-trip.
CREATE TABLE IF NOT EXISTS sessions (
    id          TEXT    PRIMARY KEY,
    timestamp   INTEGER NOT NULL,
    date        TEXT    NOT NULL,
    document    TEXT    NOT NULL
);

-- Settings (single row) -----------------------------------------------------
CREATE TABLE IF NOT EXISTS settings (
    id          INTEGER PRIMARY KEY CHECK (id = 1),
    document    TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL DEFAULT (datetime('now'))
);

-- Metadata ------------------------------------------------------------------
CREATE TABLE IF NOT EXISTS meta (
    key         TEXT    PRIMARY KEY,
    value       TEXT
);

CREATE INDEX IF NOT EXISTS idx_sessions_date      ON sessions(date);
CREATE INDEX IF NOT EXISTS idx_sessions_timestamp ON sessions(timestamp);
"""


def init_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    conn.commit()


class Database:
    """Thin wrapper around a SQLite connection."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.conn: Optional[sqlite3.Connection] = None

    # -- lifecycle -----------------------------------------------------------

    def connect(self) -> sqlite3.Connection:
        """Open (or return existing) connection and ensure schema exists."""
        if self.conn is not None:
            return self.conn
        logger.info("Connecting to SQLite at %s", self.db_path)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        init_schema(self.conn)
        logger.info("Database schema ensured.")
        return self.conn

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed.")

    # -- versioning ----------------------------------------------------------

    def check_version(self) -> bool:
        """True if the stored data version is current; records it otherwise."""
        conn = self.connect()
        row = conn.execute("SELECT value FROM meta WHERE key = 'version'").fetchone()
        if row is not None and row["value"] == CURRENT_VERSION:
            return True
        logger.info("Data version %s -> %s",
                    row["value"] if row else None, CURRENT_VERSION)
        conn.execute(
            "INSERT OR REPLACE INTO meta (key, value) VALUES ('version', ?)",
            (CURRENT_VERSION,),
        )
        conn.commit()
        return False


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Manages the SQLite connection and makes sure the tables exist on startup.
#
# Key pieces:
#   - SCHEMA_SQL: sessions keep id/timestamp/date as columns for ordering and
#     filtering, and the whole wire document as JSON text.
#   - settings is a single-row table; saving replaces the row.
#   - meta.version: informational data version, checked on launch.
#
# Data flow:
#   App start -> Database.connect() -> tables created -> Repository uses conn
