"""
Full-data export and import.

An export payload is ``{"version", "exportedAt", "sessions", "settings"}``.
Imports are validated completely before anything is returned, so a bad file
can never be half-applied.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .database import CURRENT_VERSION
from .models import Session, Settings


class ImportValidationError(ValueError):
    """The import payload is malformed; nothing was applied."""


def build_export_payload(sessions: List[Session], settings: Settings) -> Dict[str, Any]:
    return {
        "version": CURRENT_VERSION,
        "exportedAt": datetime.now(timezone.utc).isoformat(),
        "sessions": [s.to_dict() for s in sessions],
        "settings": settings.to_dict(),
    }


def dump_export(sessions: List[Session], settings: Settings) -> str:
    return json.dumps(build_export_payload(sessions, settings), indent=2, ensure_ascii=False)


def parse_import_payload(text: str) -> Tuple[List[Session], Optional[Settings]]:
    """
    Parse and validate an export file.

    Returns the sessions and the settings (None when the file carries none).
    Raises ImportValidationError on any problem.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ImportValidationError(f"Invalid JSON in import file: {e}") from e

    if not isinstance(data, dict) or "sessions" not in data:
        raise ImportValidationError("Import payload must contain a 'sessions' list")
    if not isinstance(data["sessions"], list):
        raise ImportValidationError(
            f"'sessions' must be a list, got {type(data['sessions']).__name__}"
        )

    sessions: List[Session] = []
    seen = set()
    for idx, doc in enumerate(data["sessions"]):
        if not isinstance(doc, dict):
            raise ImportValidationError(f"Session {idx}: expected an object")
        try:
            session = Session.from_dict(doc)
        except ValueError as e:
            raise ImportValidationError(f"Session {idx}: {e}") from e
        if session.id in seen:
            raise ImportValidationError(f"Session {idx}: duplicate id {session.id!r}")
        seen.add(session.id)
        sessions.append(session)

    settings = None
    raw_settings = data.get("settings")
    if raw_settings is not None:
        if not isinstance(raw_settings, dict):
            raise ImportValidationError("'settings' must be an object")
        settings = Settings.from_dict(raw_settings)
    return sessions, settings
