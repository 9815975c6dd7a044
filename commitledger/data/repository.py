"""
Repository — the single place where local persistence lives.

Every other module talks to a repository, never to raw SQL. Two
implementations share one surface: ``Repository`` over SQLite and
``InMemoryRepository`` for tests and ephemeral use. Both are injected into
the services that need them.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Dict, List, Optional

from .models import DEFAULT_SETTINGS, Session, Settings
from .transfer import dump_export, parse_import_payload

logger = logging.getLogger(__name__)


class Repository:
    """Data-access layer wrapping a sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ── Sessions ────────────────────────────────────────────────────────────

    def list_sessions(self, date: Optional[str] = None) -> List[Session]:
        """All sessions, newest first, optionally for a single day key."""
        if date is not None:
            rows = self.conn.execute(
                "SELECT document FROM sessions WHERE date = ? "
                "ORDER BY timestamp DESC, rowid",
                (date,),
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT document FROM sessions ORDER BY timestamp DESC, rowid"
            ).fetchall()
        return [self._row_to_session(r) for r in rows]

    def get_session(self, session_id: str) -> Optional[Session]:
        row = self.conn.execute(
            "SELECT document FROM sessions WHERE id = ?", (session_id,)
        ).fetchone()
        return self._row_to_session(row) if row else None

    def save_session(self, session: Session) -> None:
        """Insert or replace one session by id."""
        self.conn.execute(
            "INSERT OR REPLACE INTO sessions (id, timestamp, date, document) "
            "VALUES (?, ?, ?, ?)",
            self._session_params(session),
        )
        self.conn.commit()

    def delete_session(self, session_id: str) -> None:
        self.conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        self.conn.commit()
        logger.info("Deleted session %s", session_id)

    def replace_sessions(self, sessions: List[Session]) -> None:
        """Swap the whole local history for ``sessions`` in one transaction."""
        with self.conn:
            self._rewrite_sessions(sessions)
        logger.info("Local history replaced with %d sessions", len(sessions))

    def count_sessions(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]

    # ── Settings ────────────────────────────────────────────────────────────

    def get_settings(self) -> Settings:
        row = self.conn.execute(
            "SELECT document FROM settings WHERE id = 1"
        ).fetchone()
        if not row:
            return DEFAULT_SETTINGS
        return Settings.from_dict(json.loads(row["document"]))

    def save_settings(self, settings: Settings) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO settings (id, document, updated_at) "
            "VALUES (1, ?, datetime('now'))",
            (json.dumps(settings.to_dict()),),
        )
        self.conn.commit()

    def replace_all(self, sessions: List[Session], settings: Settings) -> None:
        """Adopt a merged snapshot (sessions and settings) atomically."""
        with self.conn:
            self._rewrite_sessions(sessions)
            self.conn.execute(
                "INSERT OR REPLACE INTO settings (id, document, updated_at) "
                "VALUES (1, ?, datetime('now'))",
                (json.dumps(settings.to_dict()),),
            )
        logger.info("Local snapshot replaced: %d sessions", len(sessions))

    # ── Data export / import ────────────────────────────────────────────────

    def export_json(self) -> str:
        return dump_export(self.list_sessions(), self.get_settings())

    def import_json(self, text: str) -> int:
        """
        Replace local data with an export file. Validation happens before
        any write; returns the number of sessions imported.
        """
        sessions, settings = parse_import_payload(text)
        self.replace_all(sessions, settings or self.get_settings())
        return len(sessions)

    # ── Row mappers ─────────────────────────────────────────────────────────

    def _rewrite_sessions(self, sessions: List[Session]) -> None:
        self.conn.execute("DELETE FROM sessions")
        self.conn.executemany(
            "INSERT INTO sessions (id, timestamp, date, document) VALUES (?, ?, ?, ?)",
            [self._session_params(s) for s in sessions],
        )

    @staticmethod
    def _session_params(session: Session) -> tuple:
        return (session.id, session.timestamp, session.date,
                json.dumps(session.to_dict(), ensure_ascii=False))

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session.from_dict(json.loads(row["document"]))


class InMemoryRepository:
    """Same surface as Repository, held in a dict."""

    def __init__(self, sessions: Optional[List[Session]] = None,
                 settings: Optional[Settings] = None) -> None:
        self._sessions: Dict[str, Session] = {s.id: s for s in sessions or []}
        self._settings: Optional[Settings] = settings

    def list_sessions(self, date: Optional[str] = None) -> List[Session]:
        items = [s for s in self._sessions.values() if date is None or s.date == date]
        return sorted(items, key=lambda s: s.timestamp, reverse=True)

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def save_session(self, session: Session) -> None:
        self._sessions[session.id] = session

    def delete_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def replace_sessions(self, sessions: List[Session]) -> None:
        self._sessions = {s.id: s for s in sessions}

    def count_sessions(self) -> int:
        return len(self._sessions)

    def get_settings(self) -> Settings:
        return self._settings or DEFAULT_SETTINGS

    def save_settings(self, settings: Settings) -> None:
        self._settings = settings

    def replace_all(self, sessions: List[Session], settings: Settings) -> None:
        self._sessions = {s.id: s for s in sessions}
        self._settings = settings

    def export_json(self) -> str:
        return dump_export(self.list_sessions(), self.get_settings())

    def import_json(self, text: str) -> int:
        sessions, settings = parse_import_payload(text)
        self.replace_all(sessions, settings or self.get_settings())
        return len(sessions)


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   The repositories are the only places local session/settings storage is
#   read or written. Services receive one in their constructor.
#
# Key methods:
#   - list/get/save/delete for sessions, get/save for settings
#   - replace_sessions()/replace_all(): adopt a merged sync snapshot
#     wholesale inside one transaction
#   - export_json()/import_json(): full backups; imports are validated by
#     transfer.parse_import_payload before any row changes
#
# Data flow:
#   Service layer -> repo.method() -> SQL -> JSON document -> Session/Settings
