from __future__ import annotations


# PUBLIC_INTERFACE
class StorageError(Exception):
    """Raised when a storage backend fails to complete an operation."""


# PUBLIC_INTERFACE
class StorageUnavailableError(StorageError):
    """
    Raised for transient backend failures (locked database, lost connection,
    timeouts). Callers may retry; the API maps this to 503.
    """
