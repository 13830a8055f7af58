"""Exception hierarchy for monitoring cycles.

Upstream and credential errors abort a cycle. Storage and notification
errors are caught by the orchestrator and reported per collaborator.
"""

from typing import Any, Dict, Optional


class MonitorError(Exception):
    """Base exception for all monitoring errors."""

    def __init__(
        self,
        message: str,
        code: str = "MONITOR_ERROR",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        result = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class CredentialsError(MonitorError):
    """eBay client credentials are not configured."""

    def __init__(self, message: str = "Missing eBay credentials", **kwargs):
        super().__init__(message, code="CREDENTIALS_MISSING", **kwargs)


class UpstreamError(MonitorError):
    """The eBay API returned an error or an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, code="UPSTREAM_ERROR", **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)


class StorageError(MonitorError):
    """Reading or writing the snapshot store failed."""

    def __init__(self, message: str, code: str = "STORAGE_ERROR", **kwargs):
        super().__init__(message, code=code, **kwargs)


class SnapshotConflictError(StorageError):
    """The stored snapshot changed between load and save."""

    def __init__(self, expected_version: int, actual_version: Optional[int] = None):
        super().__init__(
            f"Snapshot version moved since load (expected {expected_version}, "
            f"found {actual_version})",
            code="SNAPSHOT_CONFLICT",
            details={"expected_version": expected_version, "actual_version": actual_version},
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


class NotificationError(MonitorError):
    """Sending the notification failed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="NOTIFICATION_ERROR", **kwargs)
