"""
Sync error taxonomy.

Remote failures are classified into a closed set of types and wrapped in a
SyncError. Only network-class errors are worth retrying.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class SyncErrorType(str, Enum):
    NETWORK = "NETWORK_ERROR"
    PERMISSION = "PERMISSION_ERROR"
    QUOTA = "QUOTA_EXCEEDED"
    UNKNOWN = "UNKNOWN_ERROR"


USER_MESSAGES = {
    SyncErrorType.NETWORK: "Unable to sync. Please check your internet connection.",
    SyncErrorType.PERMISSION: "Sync permission denied. Please try signing in again.",
    SyncErrorType.QUOTA: "Cloud storage quota exceeded. Please contact support.",
    SyncErrorType.UNKNOWN: (
        "Sync failed. Your data is saved locally. "
        "We'll retry when you're back online."
    ),
}


class SyncError(Exception):
    """
    A classified remote failure.

    ``merged_result`` is set by the reconciler when the failure happened
    after a successful merge (i.e. during upload), so callers can still
    adopt the merged state locally.
    """

    def __init__(self, message: str, error_type: SyncErrorType,
                 original: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.original = original
        self.merged_result: Optional[Any] = None

    @property
    def is_transient(self) -> bool:
        return self.error_type == SyncErrorType.NETWORK

    @classmethod
    def from_exception(cls, exc: BaseException) -> "SyncError":
        if isinstance(exc, SyncError):
            return exc
        error_type = classify_error(exc)
        return cls(user_friendly_message(error_type), error_type, exc)


def classify_error(exc: BaseException) -> SyncErrorType:
    """Map a raw collaborator exception to a SyncErrorType."""
    if isinstance(exc, SyncError):
        return exc.error_type
    code = str(getattr(exc, "code", "") or "")
    message = str(exc).lower()

    if isinstance(exc, PermissionError) or code in ("permission-denied", "unauthenticated"):
        return SyncErrorType.PERMISSION
    if code == "resource-exhausted" or "quota" in message:
        return SyncErrorType.QUOTA
    if (isinstance(exc, (ConnectionError, TimeoutError))
            or code == "unavailable"
            or "network" in message or "offline" in message):
        return SyncErrorType.NETWORK
    return SyncErrorType.UNKNOWN


def user_friendly_message(error_type: SyncErrorType) -> str:
    return USER_MESSAGES.get(error_type, USER_MESSAGES[SyncErrorType.UNKNOWN])
