from .errors import SyncError, SyncErrorType
from .reconciler import Reconciler, SyncResult, SyncState
from .remote_store import InMemoryRemoteStore, JsonFileRemoteStore, RetryingRemoteStore

__all__ = ["SyncError", "SyncErrorType", "Reconciler", "SyncResult", "SyncState",
           "InMemoryRemoteStore", "JsonFileRemoteStore", "RetryingRemoteStore"]
