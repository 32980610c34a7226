"""Custom exception hierarchy for pystoresync."""

from __future__ import annotations


class StoreSyncError(Exception):
    """Base exception for all pystoresync errors."""


class SyncConfigError(StoreSyncError):
    """Invalid or missing configuration."""


class EnvelopeDecodeError(StoreSyncError):
    """A stored or broadcast value is not a valid persisted envelope.

    Raised at the storage boundary when a value is not JSON or does not carry
    a ``state`` object.  The sync path catches it and drops the single
    update; it never reaches the writer.
    """

    def __init__(self, message: str, *, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class StorageError(StoreSyncError):
    """Storage primitive I/O failure (e.g. unreadable file)."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class TransportError(StoreSyncError):
    """Broadcast transport could not be opened or used."""
