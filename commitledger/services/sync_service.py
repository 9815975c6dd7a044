"""
Sync Service — runs reconciliation against the local repository.

Loads the local snapshot, hands it to the Reconciler and adopts whatever
merged snapshot comes back. A failed fetch leaves local data untouched; a
failed upload still updates local data with the merged result.
"""

from __future__ import annotations

import logging
from typing import List

from commitledger.data.models import Session
from commitledger.sync.errors import SyncError
from commitledger.sync.reconciler import Reconciler, SyncResult, merge_sessions

logger = logging.getLogger(__name__)


class SyncService:
    """Bridges a local repository and a Reconciler."""

    def __init__(self, repo, reconciler: Reconciler) -> None:
        self.repo = repo
        self.reconciler = reconciler

    async def full_sync(self, user_key: str) -> SyncResult:
        """
        Merge local and remote state; local becomes the merged snapshot.

        Sessions saved locally while the sync was in flight (e.g. by
        push_session) are kept on top of the merged snapshot.
        """
        local_sessions = self.repo.list_sessions()
        local_settings = self.repo.get_settings()
        try:
            result = await self.reconciler.reconcile(user_key, local_sessions, local_settings)
        except SyncError as err:
            merged = err.merged_result
            if merged is not None:
                self._adopt(merged, local_sessions)
                logger.warning("Applied merged snapshot locally despite upload failure.")
            raise
        self._adopt(result, local_sessions)
        logger.info("Full sync complete for %s: %d sessions", user_key, len(result.sessions))
        return result

    def _adopt(self, result: SyncResult, snapshot: List[Session]) -> None:
        before = {s.id: s for s in snapshot}
        fresh = [s for s in self.repo.list_sessions() if before.get(s.id) != s]
        sessions = result.sessions
        if fresh:
            sessions, _ = merge_sessions(result.sessions, fresh)
            logger.info("Kept %d session(s) saved during sync.", len(fresh))
        self.repo.replace_all(sessions, result.settings)

    async def push_session(self, user_key: str, session: Session) -> None:
        """Save a finished session locally, then upload just that session."""
        self.repo.save_session(session)
        try:
            await self.reconciler.store.write_sessions(user_key, [session])
        except Exception as exc:
            err = SyncError.from_exception(exc)
            logger.warning("Session %s kept locally, upload failed: %s", session.id, err)
            if err is exc:
                raise
            raise err from exc
        logger.info("Session %s pushed for %s", session.id, user_key)
