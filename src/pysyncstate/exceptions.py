"""Custom exception hierarchy for pysyncstate.

None of these cross the public coordinator boundary: they are raised by the
services (cache, stores, transport) and recovered by the coordinator, which
logs them and forwards them to the optional error callback.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for all pysyncstate errors."""


class SyncConfigError(SyncError):
    """Invalid or missing configuration."""


class RemoteFetchError(SyncError):
    """Remote read failed (network, non-2xx, invalid JSON, missing field)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class StorageError(SyncError):
    """Persistent store operation failed."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class StorageReadError(StorageError):
    """Could not read a key from the persistent store."""


class StorageWriteError(StorageError):
    """Could not write a key to the persistent store."""


class MalformedPersistedValue(StorageReadError):
    """The persisted blob is not valid JSON or not a valid state field.

    ``blob`` holds the raw text as read from the store.
    """

    def __init__(self, message: str, *, key: str = "", blob: str = "") -> None:
        self.blob = blob
        super().__init__(message, key=key)
