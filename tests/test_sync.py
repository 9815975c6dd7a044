"""Tests for the sync layer: merge rules, reconciler, stores, retry, service."""

import asyncio
import json
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from commitledger.data.models import DEFAULT_SETTINGS, Session, Settings
from commitledger.data.repository import InMemoryRepository
from commitledger.services.sync_service import SyncService
from commitledger.sync.errors import SyncError, SyncErrorType, classify_error
from commitledger.sync.reconciler import (
    MergeDecision, Reconciler, SyncState, merge_sessions, merge_settings,
)
from commitledger.sync.remote_store import (
    InMemoryRemoteStore, JsonFileRemoteStore, RetryingRemoteStore,
)

USER = "user-1"


def make_session(sid, ts, duration=1800, date="2024-03-10", target=None):
    return Session(id=sid, timestamp=ts, duration_seconds=duration, date=date,
                   target_duration_seconds=target)


class RemoteError(Exception):
    """Raw backend error carrying a status code."""

    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


@pytest.fixture
def store():
    return InMemoryRemoteStore()


def seed_remote(store, sessions=(), settings=None):
    asyncio.run(store.write_sessions(USER, list(sessions)))
    if settings is not None:
        asyncio.run(store.write_settings(USER, settings))
    store.calls.clear()


# ── Merge rules ─────────────────────────────────────────────────────────────

class TestMergeSessions:
    def test_newer_local_wins(self):
        merged, decisions = merge_sessions([make_session("x", 2000, 100)],
                                           [make_session("x", 1500, 200)])
        assert merged == [make_session("x", 2000, 100)]
        assert decisions["x"] == MergeDecision.KEPT_LOCAL

    def test_newer_remote_wins(self):
        merged, decisions = merge_sessions([make_session("x", 1500, 100)],
                                           [make_session("x", 2000, 200)])
        assert merged[0].duration_seconds == 200
        assert decisions["x"] == MergeDecision.KEPT_REMOTE

    def test_tie_goes_to_remote(self):
        merged, decisions = merge_sessions([make_session("x", 1000, 100)],
                                           [make_session("x", 1000, 200)])
        assert merged[0].duration_seconds == 200
        assert decisions["x"] == MergeDecision.KEPT_REMOTE

    def test_union_sorted_newest_first(self):
        merged, decisions = merge_sessions(
            [make_session("a", 1000), make_session("c", 3000)],
            [make_session("b", 2000)],
        )
        assert [s.id for s in merged] == ["c", "b", "a"]
        assert decisions["a"] == MergeDecision.LOCAL_ONLY
        assert decisions["b"] == MergeDecision.REMOTE_ONLY

    def test_empty(self):
        assert merge_sessions([], []) == ([], {})

    def test_settings_remote_wins_when_present(self):
        local = Settings(weekly_rep_target=1)
        remote = Settings(weekly_rep_target=2)
        assert merge_settings(local, remote) is remote
        assert merge_settings(local, None) is local


# ── Reconciler ──────────────────────────────────────────────────────────────

class TestReconciler:
    def test_reconcile_merges_and_uploads(self, store):
        seed_remote(store, [make_session("r", 2000)], Settings(weekly_rep_target=20))
        result = asyncio.run(Reconciler(store).reconcile(
            USER, [make_session("l", 1000)], DEFAULT_SETTINGS))
        assert [s.id for s in result.sessions] == ["r", "l"]
        assert result.settings.weekly_rep_target == 20
        assert result.state == SyncState.SYNCED
        assert {d["id"] for d in store.documents(USER)} == {"r", "l"}

    def test_reads_overlap(self):
        class RendezvousStore(InMemoryRemoteStore):
            """read_sessions only returns once read_settings has started."""

            def __init__(self):
                super().__init__()
                self.settings_started = asyncio.Event()

            async def read_sessions(self, user_key):
                await self.settings_started.wait()
                return await super().read_sessions(user_key)

            async def read_settings(self, user_key):
                self.settings_started.set()
                return await super().read_settings(user_key)

        async def run():
            store = RendezvousStore()
            return await asyncio.wait_for(
                Reconciler(store).reconcile(USER, [make_session("l", 1)], DEFAULT_SETTINGS),
                timeout=2,
            )

        assert asyncio.run(run()).state == SyncState.SYNCED

    def test_writes_start_after_both_reads(self, store):
        asyncio.run(Reconciler(store).reconcile(USER, [], DEFAULT_SETTINGS))
        ops = [op for op, _ in store.calls]
        assert set(ops[:2]) == {"read_sessions", "read_settings"}
        assert set(ops[2:]) == {"write_sessions", "write_settings"}

    def test_listener_sees_each_phase(self, store):
        events = []
        reconciler = Reconciler(store)
        unsubscribe = reconciler.subscribe(events.append)
        asyncio.run(reconciler.reconcile(USER, [], DEFAULT_SETTINGS))
        assert [e.state for e in events] == [
            SyncState.FETCHING_REMOTE, SyncState.MERGING,
            SyncState.UPLOADING, SyncState.SYNCED,
        ]
        unsubscribe()
        asyncio.run(reconciler.reconcile(USER, [], DEFAULT_SETTINGS))
        assert len(events) == 4

    def test_fetch_failure(self, store):
        events = []
        store.fail_next("read_sessions", ConnectionError("offline"))
        reconciler = Reconciler(store, listeners=[events.append])
        with pytest.raises(SyncError) as info:
            asyncio.run(reconciler.reconcile(USER, [make_session("l", 1)], DEFAULT_SETTINGS))
        assert info.value.error_type == SyncErrorType.NETWORK
        assert info.value.merged_result is None
        assert events[-1].state == SyncState.ERROR
        assert events[-1].error is info.value
        assert store.documents(USER) == []

    def test_sync_error_passes_through_untouched(self, store):
        original = SyncError("denied", SyncErrorType.PERMISSION)
        store.fail_next("read_settings", original)
        with pytest.raises(SyncError) as info:
            asyncio.run(Reconciler(store).reconcile(USER, [], DEFAULT_SETTINGS))
        assert info.value is original

    def test_upload_failure_carries_merged_result(self, store):
        seed_remote(store, [make_session("r", 2000)])
        store.fail_next("write_sessions", PermissionError("denied"))
        with pytest.raises(SyncError) as info:
            asyncio.run(Reconciler(store).reconcile(
                USER, [make_session("l", 1000)], DEFAULT_SETTINGS))
        merged = info.value.merged_result
        assert info.value.error_type == SyncErrorType.PERMISSION
        assert merged.state == SyncState.ERROR
        assert [s.id for s in merged.sessions] == ["r", "l"]

    def test_failed_upload_still_finishes_other_write(self, store):
        store.fail_next("write_sessions", PermissionError("denied"))
        with pytest.raises(SyncError):
            asyncio.run(Reconciler(store).reconcile(
                USER, [make_session("l", 1000)], Settings(weekly_rep_target=99)))
        assert asyncio.run(store.read_settings(USER)).weekly_rep_target == 99
        assert store.documents(USER) == []

    def test_both_writes_failing_reports_sessions_error(self, store):
        store.fail_next("write_sessions", PermissionError("denied"))
        store.fail_next("write_settings", ConnectionError("reset"))
        with pytest.raises(SyncError) as info:
            asyncio.run(Reconciler(store).reconcile(USER, [], DEFAULT_SETTINGS))
        assert info.value.error_type == SyncErrorType.PERMISSION
        assert info.value.merged_result is not None


# ── Sync service ────────────────────────────────────────────────────────────

class TestSyncService:
    def test_full_sync_replaces_local(self, store):
        seed_remote(store, [make_session("r", 2000)], Settings(weekly_rep_target=5))
        repo = InMemoryRepository([make_session("l", 1000)])
        asyncio.run(SyncService(repo, Reconciler(store)).full_sync(USER))
        assert [s.id for s in repo.list_sessions()] == ["r", "l"]
        assert repo.get_settings().weekly_rep_target == 5

    def test_repeated_sync_is_stable(self, store):
        seed_remote(store, [make_session("r", 2000), make_session("x", 1500, 50)],
                    Settings(weekly_rep_target=5))
        repo = InMemoryRepository([make_session("l", 1000), make_session("x", 1200, 60)])
        service = SyncService(repo, Reconciler(store))

        first = asyncio.run(service.full_sync(USER))
        remote_after_first = json.dumps(store.documents(USER), sort_keys=True)
        second = asyncio.run(service.full_sync(USER))

        dump = lambda r: json.dumps([s.to_dict() for s in r.sessions]) + json.dumps(
            r.settings.to_dict())
        assert dump(first) == dump(second)
        assert json.dumps(store.documents(USER), sort_keys=True) == remote_after_first

    def test_fetch_failure_leaves_local_untouched(self, store):
        store.fail_next("read_settings", RemoteError("backend down", "unavailable"))
        repo = InMemoryRepository([make_session("l", 1000)], Settings(weekly_rep_target=3))
        with pytest.raises(SyncError):
            asyncio.run(SyncService(repo, Reconciler(store)).full_sync(USER))
        assert [s.id for s in repo.list_sessions()] == ["l"]
        assert repo.get_settings().weekly_rep_target == 3

    def test_upload_failure_still_updates_local(self, store):
        seed_remote(store, [make_session("r", 2000)])
        store.fail_next("write_settings", RemoteError("quota exceeded", "resource-exhausted"))
        repo = InMemoryRepository([make_session("l", 1000)])
        with pytest.raises(SyncError) as info:
            asyncio.run(SyncService(repo, Reconciler(store)).full_sync(USER))
        assert info.value.error_type == SyncErrorType.QUOTA
        assert [s.id for s in repo.list_sessions()] == ["r", "l"]

    def test_push_session(self, store):
        repo = InMemoryRepository()
        service = SyncService(repo, Reconciler(store))
        asyncio.run(service.push_session(USER, make_session("new", 5000)))
        assert repo.get_session("new") is not None
        assert [d["id"] for d in store.documents(USER)] == ["new"]

    def test_push_failure_keeps_local_copy(self, store):
        store.fail_next("write_sessions", TimeoutError())
        repo = InMemoryRepository()
        service = SyncService(repo, Reconciler(store))
        with pytest.raises(SyncError) as info:
            asyncio.run(service.push_session(USER, make_session("new", 5000)))
        assert info.value.is_transient
        assert repo.get_session("new") is not None

    def test_session_pushed_during_sync_survives(self):
        class PausingStore(InMemoryRemoteStore):
            """Holds read_sessions open after reading until released."""

            def __init__(self):
                super().__init__()
                self.reading = asyncio.Event()
                self.release = asyncio.Event()

            async def read_sessions(self, user_key):
                sessions = await super().read_sessions(user_key)
                self.reading.set()
                await self.release.wait()
                return sessions

        repo = InMemoryRepository([make_session("old", 1000)])

        async def run():
            store = PausingStore()
            service = SyncService(repo, Reconciler(store))
            sync = asyncio.ensure_future(service.full_sync(USER))
            await store.reading.wait()
            await service.push_session(USER, make_session("live", 9000))
            store.release.set()
            await sync
            return store

        store = asyncio.run(run())
        assert [s.id for s in repo.list_sessions()] == ["live", "old"]
        assert {d["id"] for d in store.documents(USER)} == {"live", "old"}


# ── Errors & retry ──────────────────────────────────────────────────────────

class TestClassifyError:
    @pytest.mark.parametrize("exc,expected", [
        (ConnectionError("reset"), SyncErrorType.NETWORK),
        (TimeoutError(), SyncErrorType.NETWORK),
        (RemoteError("x", "unavailable"), SyncErrorType.NETWORK),
        (RuntimeError("network unreachable"), SyncErrorType.NETWORK),
        (PermissionError("no"), SyncErrorType.PERMISSION),
        (RemoteError("x", "permission-denied"), SyncErrorType.PERMISSION),
        (RemoteError("x", "unauthenticated"), SyncErrorType.PERMISSION),
        (RemoteError("x", "resource-exhausted"), SyncErrorType.QUOTA),
        (RuntimeError("Quota exceeded"), SyncErrorType.QUOTA),
        (ValueError("boom"), SyncErrorType.UNKNOWN),
    ])
    def test_classification(self, exc, expected):
        assert classify_error(exc) == expected

    def test_wrapping_keeps_original(self):
        raw = ConnectionError("reset")
        err = SyncError.from_exception(raw)
        assert err.original is raw
        assert "internet connection" in str(err)
        assert SyncError.from_exception(err) is err


class TestRetryingRemoteStore:
    @pytest.fixture
    def delays(self):
        return []

    @pytest.fixture
    def retrying(self, store, delays):
        async def fake_sleep(seconds):
            delays.append(seconds)
        return RetryingRemoteStore(store, sleep=fake_sleep)

    def reads(self, store):
        return sum(1 for op, _ in store.calls if op == "read_sessions")

    def test_network_error_retried_then_succeeds(self, store, retrying, delays):
        store.fail_next("read_sessions", ConnectionError("reset"), times=2)
        assert asyncio.run(retrying.read_sessions(USER)) == []
        assert self.reads(store) == 3
        assert delays == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self, store, retrying, delays):
        store.fail_next("read_sessions", ConnectionError("reset"), times=5)
        with pytest.raises(SyncError) as info:
            asyncio.run(retrying.read_sessions(USER))
        assert info.value.error_type == SyncErrorType.NETWORK
        assert self.reads(store) == 3
        assert len(delays) == 2

    @pytest.mark.parametrize("exc", [
        PermissionError("denied"),
        RemoteError("x", "resource-exhausted"),
    ])
    def test_permission_and_quota_not_retried(self, store, retrying, delays, exc):
        store.fail_next("read_sessions", exc)
        with pytest.raises(SyncError):
            asyncio.run(retrying.read_sessions(USER))
        assert self.reads(store) == 1
        assert delays == []

    def test_backoff_capped(self, store):
        r = RetryingRemoteStore(store, base_delay=4, max_delay=10)
        assert [r.backoff(n) for n in (1, 2, 3, 4)] == [4, 8, 10, 10]

    def test_from_config(self, store):
        r = RetryingRemoteStore.from_config(
            store, {"max_attempts": 5, "base_delay_s": 0.5, "max_delay_s": 2})
        assert (r.max_attempts, r.base_delay, r.max_delay) == (5, 0.5, 2)

    def test_reconciler_over_retrying_store(self, store, retrying):
        store.fail_next("write_sessions", ConnectionError("reset"))
        result = asyncio.run(Reconciler(retrying).reconcile(
            USER, [make_session("l", 1000)], DEFAULT_SETTINGS))
        assert result.state == SyncState.SYNCED
        assert [d["id"] for d in store.documents(USER)] == ["l"]


# ── JSON file store ─────────────────────────────────────────────────────────

class TestJsonFileRemoteStore:
    def test_empty_user(self, tmp_path):
        fs = JsonFileRemoteStore(tmp_path)
        assert asyncio.run(fs.read_sessions(USER)) == []
        assert asyncio.run(fs.read_settings(USER)) is None

    def test_upsert_and_read_newest_first(self, tmp_path):
        fs = JsonFileRemoteStore(tmp_path)
        asyncio.run(fs.write_sessions(USER, [make_session("a", 1000), make_session("b", 3000)]))
        asyncio.run(fs.write_sessions(USER, [make_session("a", 4000, 99)]))
        sessions = asyncio.run(fs.read_sessions(USER))
        assert [s.id for s in sessions] == ["a", "b"]
        assert sessions[0].duration_seconds == 99
        assert (tmp_path / "users" / USER / "sessions.json").exists()

    def test_settings_round_trip(self, tmp_path):
        fs = JsonFileRemoteStore(tmp_path)
        asyncio.run(fs.write_settings(USER, Settings(weekly_rep_target=42)))
        assert asyncio.run(fs.read_settings(USER)).weekly_rep_target == 42

    def test_full_sync_between_two_devices(self, tmp_path):
        fs = JsonFileRemoteStore(tmp_path)
        laptop = InMemoryRepository([make_session("laptop", 1000)])
        phone = InMemoryRepository([make_session("phone", 2000)])
        asyncio.run(SyncService(laptop, Reconciler(fs)).full_sync(USER))
        asyncio.run(SyncService(phone, Reconciler(fs)).full_sync(USER))
        asyncio.run(SyncService(laptop, Reconciler(fs)).full_sync(USER))
        assert [s.id for s in laptop.list_sessions()] == ["phone", "laptop"]
        assert [s.id for s in phone.list_sessions()] == ["phone", "laptop"]
