"""
Sync Reconciler — merges a local snapshot with the remote one.

Sessions merge by id with last-write-wins on ``timestamp``; settings are
taken from the remote whenever it has them. The merged snapshot is written
back so both sides converge.

State per call:
    idle -> fetching_remote -> merging -> uploading -> synced
with fetching_remote/uploading -> error on any collaborator failure.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from commitledger.data.models import Session, Settings
from commitledger.sync.errors import SyncError
from commitledger.sync.remote_store import RemoteStore

logger = logging.getLogger(__name__)


class SyncState:
    """Phases of one reconcile() call."""
    IDLE = "idle"
    FETCHING_REMOTE = "fetching_remote"
    MERGING = "merging"
    UPLOADING = "uploading"
    SYNCED = "synced"
    ERROR = "error"


class MergeDecision(str, Enum):
    """What happened to one session id during the merge."""
    LOCAL_ONLY = "local_only"
    REMOTE_ONLY = "remote_only"
    KEPT_LOCAL = "kept_local"
    KEPT_REMOTE = "kept_remote"


@dataclass(frozen=True)
class SyncEvent:
    state: str
    user_key: str
    error: Optional[SyncError] = None


@dataclass
class SyncResult:
    sessions: List[Session]
    settings: Settings
    decisions: Dict[str, MergeDecision] = field(default_factory=dict)
    state: str = SyncState.MERGING


SyncListener = Callable[[SyncEvent], None]


# ── Pure merge rules ────────────────────────────────────────────────────────

def merge_sessions(
    local: Iterable[Session], remote: Iterable[Session]
) -> Tuple[List[Session], Dict[str, MergeDecision]]:
    """
    Last-write-wins by id, newest first.

    Local sessions are inserted first, then remote ones. A later item
    replaces the kept one unless the kept one has a strictly greater
    timestamp, so equal timestamps resolve to the remote copy.
    """
    merged: Dict[str, Session] = {}
    decisions: Dict[str, MergeDecision] = {}

    for s in local:
        existing = merged.get(s.id)
        if existing is None or s.timestamp >= existing.timestamp:
            merged[s.id] = s
        decisions[s.id] = MergeDecision.LOCAL_ONLY

    for s in remote:
        existing = merged.get(s.id)
        if existing is None:
            merged[s.id] = s
            decisions[s.id] = MergeDecision.REMOTE_ONLY
        elif s.timestamp >= existing.timestamp:
            merged[s.id] = s
            decisions[s.id] = MergeDecision.KEPT_REMOTE
        elif decisions[s.id] == MergeDecision.LOCAL_ONLY:
            decisions[s.id] = MergeDecision.KEPT_LOCAL

    ordered = sorted(merged.values(), key=lambda s: s.timestamp, reverse=True)
    return ordered, decisions


def merge_settings(local: Settings, remote: Optional[Settings]) -> Settings:
    """The remote record wins wholesale when it exists."""
    return remote if remote is not None else local


# ── Reconciler ──────────────────────────────────────────────────────────────

class Reconciler:
    """
    Runs full syncs against one remote store and reports each phase to
    subscribed listeners.
    """

    def __init__(self, store: RemoteStore,
                 listeners: Iterable[SyncListener] = ()) -> None:
        self.store = store
        self._listeners: List[SyncListener] = list(listeners)

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _emit(self, state: str, user_key: str, error: Optional[SyncError] = None) -> None:
        event = SyncEvent(state, user_key, error)
        for listener in list(self._listeners):
            listener(event)

    async def reconcile(self, user_key: str, local_sessions: List[Session],
                        local_settings: Settings) -> SyncResult:
        """
        Merge local state with the remote and upload the result.

        Raises SyncError when a read or a write fails. After a failed
        upload the error carries ``merged_result`` so the caller can still
        adopt the merged snapshot. Both writes are always awaited, so the
        write that succeeded has landed; the remote converges on the next
        successful call.
        """
        self._emit(SyncState.FETCHING_REMOTE, user_key)
        try:
            remote_sessions, remote_settings = await asyncio.gather(
                self.store.read_sessions(user_key),
                self.store.read_settings(user_key),
            )
        except Exception as exc:
            err = SyncError.from_exception(exc)
            logger.error("Sync fetch failed for %s: %s", user_key, err)
            self._emit(SyncState.ERROR, user_key, err)
            if err is exc:
                raise
            raise err from exc

        self._emit(SyncState.MERGING, user_key)
        sessions, decisions = merge_sessions(local_sessions, remote_sessions)
        settings = merge_settings(local_settings, remote_settings)
        result = SyncResult(sessions, settings, decisions)
        logger.info(
            "Merged %d local + %d remote sessions into %d for %s",
            len(local_sessions), len(remote_sessions), len(sessions), user_key,
        )

        self._emit(SyncState.UPLOADING, user_key)
        # Both writes always run to completion; the first failure is reported.
        outcomes = await asyncio.gather(
            self.store.write_sessions(user_key, sessions),
            self.store.write_settings(user_key, settings),
            return_exceptions=True,
        )
        failures = [o for o in outcomes if isinstance(o, BaseException)]
        for exc in failures:
            if not isinstance(exc, Exception):
                raise exc
        if failures:
            exc = failures[0]
            err = SyncError.from_exception(exc)
            result.state = SyncState.ERROR
            err.merged_result = result
            logger.warning("Sync upload failed for %s; remote partially updated: %s", user_key, err)
            self._emit(SyncState.ERROR, user_key, err)
            if err is exc:
                raise err
            raise err from exc

        result.state = SyncState.SYNCED
        self._emit(SyncState.SYNCED, user_key)
        return result


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Produces one authoritative session list and settings record from the
#   local and remote snapshots, then pushes that snapshot to the remote.
#
# Key pieces:
#   - merge_sessions(): id map, local first then remote, ties go to remote,
#     output sorted newest first. Every id gets a MergeDecision so callers
#     can see which side won.
#   - merge_settings(): remote wins whole, no field-level merge.
#   - Reconciler.reconcile(): both reads run concurrently; writes start only
#     after both reads and the merge are done, and also run concurrently.
#   - Listeners receive a SyncEvent per phase; they are held by the
#     Reconciler instance and added with subscribe().
#
# Data flow:
#   local snapshot + store.read_*() -> merge -> store.write_*() -> SyncResult
