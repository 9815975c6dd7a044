"""
Remote Store — the cloud side of sync.

The reconciler only needs four failable async operations keyed by a user
key. This module defines that contract, two concrete stores (in-memory and a
JSON-file document store) and a wrapper that classifies failures and retries
network-class errors per operation.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import defaultdict
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from commitledger.data.models import Session, Settings
from commitledger.sync.errors import SyncError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0    # seconds
DEFAULT_MAX_DELAY = 10.0


class RemoteStore(Protocol):
    async def read_sessions(self, user_key: str) -> List[Session]: ...

    async def read_settings(self, user_key: str) -> Optional[Settings]: ...

    async def write_sessions(self, user_key: str, sessions: List[Session]) -> None: ...

    async def write_settings(self, user_key: str, settings: Settings) -> None: ...


def _newest_first(docs: List[Dict[str, Any]]) -> List[Session]:
    return [Session.from_dict(d) for d in sorted(docs, key=lambda d: d["timestamp"], reverse=True)]


class InMemoryRemoteStore:
    """
    Document store held in memory. Sessions are upserted by id, never
    deleted. Failures can be queued per operation for tests.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._settings: Dict[str, Dict[str, Any]] = {}
        self._failures: Dict[str, List[BaseException]] = defaultdict(list)
        self.calls: List[Tuple[str, str]] = []

    def fail_next(self, operation: str, exc: BaseException, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``exc``."""
        self._failures[operation].extend([exc] * times)

    async def _enter(self, operation: str, user_key: str) -> None:
        self.calls.append((operation, user_key))
        await asyncio.sleep(0)
        if self._failures[operation]:
            raise self._failures[operation].pop(0)

    async def read_sessions(self, user_key: str) -> List[Session]:
        await self._enter("read_sessions", user_key)
        return _newest_first(list(self._sessions[user_key].values()))

    async def read_settings(self, user_key: str) -> Optional[Settings]:
        await self._enter("read_settings", user_key)
        doc = self._settings.get(user_key)
        return Settings.from_dict(doc) if doc is not None else None

    async def write_sessions(self, user_key: str, sessions: List[Session]) -> None:
        await self._enter("write_sessions", user_key)
        for s in sessions:
            self._sessions[user_key][s.id] = s.to_dict()

    async def write_settings(self, user_key: str, settings: Settings) -> None:
        await self._enter("write_settings", user_key)
        self._settings[user_key] = settings.to_dict()

    def documents(self, user_key: str) -> List[Dict[str, Any]]:
        return list(self._sessions[user_key].values())


class JsonFileRemoteStore:
    """
    Document store on a shared directory (``<root>/users/<key>/``).

    File I/O runs in a worker thread so the event loop stays free while the
    two reads (or two writes) of a sync are in flight.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _user_dir(self, user_key: str) -> Path:
        return self.root / "users" / user_key

    @staticmethod
    def _load(path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _dump(path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)

    def _read_sessions(self, user_key: str) -> List[Session]:
        docs = self._load(self._user_dir(user_key) / "sessions.json") or {}
        return _newest_first(list(docs.values()))

    def _write_sessions(self, user_key: str, sessions: List[Session]) -> None:
        path = self._user_dir(user_key) / "sessions.json"
        docs = self._load(path) or {}
        for s in sessions:
            docs[s.id] = s.to_dict()
        self._dump(path, docs)

    def _read_settings(self, user_key: str) -> Optional[Settings]:
        doc = self._load(self._user_dir(user_key) / "settings.json")
        return Settings.from_dict(doc) if doc is not None else None

    def _write_settings(self, user_key: str, settings: Settings) -> None:
        self._dump(self._user_dir(user_key) / "settings.json", settings.to_dict())

    async def read_sessions(self, user_key: str) -> List[Session]:
        return await asyncio.to_thread(self._read_sessions, user_key)

    async def read_settings(self, user_key: str) -> Optional[Settings]:
        return await asyncio.to_thread(self._read_settings, user_key)

    async def write_sessions(self, user_key: str, sessions: List[Session]) -> None:
        await asyncio.to_thread(self._write_sessions, user_key, sessions)

    async def write_settings(self, user_key: str, settings: Settings) -> None:
        await asyncio.to_thread(self._write_settings, user_key, settings)


class RetryingRemoteStore:
    """
    Wraps a store: every failure leaves as a SyncError, and network-class
    failures are retried with exponential backoff before giving up.
    Permission and quota failures are raised on the first attempt.
    """

    def __init__(
        self,
        inner: RemoteStore,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.inner = inner
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    @classmethod
    def from_config(cls, inner: RemoteStore, sync_config: Dict[str, Any]) -> "RetryingRemoteStore":
        return cls(
            inner,
            max_attempts=sync_config.get("max_attempts", DEFAULT_MAX_ATTEMPTS),
            base_delay=sync_config.get("base_delay_s", DEFAULT_BASE_DELAY),
            max_delay=sync_config.get("max_delay_s", DEFAULT_MAX_DELAY),
        )

    def backoff(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    async def _with_retry(self, name: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as exc:
                err = SyncError.from_exception(exc)
                if not err.is_transient or attempt >= self.max_attempts:
                    logger.error("%s failed (%s) after %d attempt(s)",
                                 name, err.error_type.value, attempt)
                    if err is exc:
                        raise
                    raise err from exc
                delay = self.backoff(attempt)
                logger.warning("%s failed (attempt %d/%d), retrying in %.1fs: %s",
                               name, attempt, self.max_attempts, delay, exc)
                await self._sleep(delay)
                attempt += 1

    async def read_sessions(self, user_key: str) -> List[Session]:
        return await self._with_retry("read_sessions", lambda: self.inner.read_sessions(user_key))

    async def read_settings(self, user_key: str) -> Optional[Settings]:
        return await self._with_retry("read_settings", lambda: self.inner.read_settings(user_key))

    async def write_sessions(self, user_key: str, sessions: List[Session]) -> None:
        await self._with_retry("write_sessions",
                               lambda: self.inner.write_sessions(user_key, sessions))

    async def write_settings(self, user_key: str, settings: Settings) -> None:
        await self._with_retry("write_settings",
                               lambda: self.inner.write_settings(user_key, settings))
