"""pystoresync - Cross-instance synchronization for persisted client state."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pystoresync")
except PackageNotFoundError:
    __version__ = "0+local"
from pystoresync.config import SyncConfig
from pystoresync.context import SyncContext
from pystoresync.exceptions import (
    EnvelopeDecodeError,
    StorageError,
    StoreSyncError,
    SyncConfigError,
    TransportError,
)
from pystoresync.models import PersistedEnvelope
from pystoresync.storage import FileStorage, SharedStorageArea, StorageView
from pystoresync.store import PersistedStore
from pystoresync.sync import (
    BroadcastChannel,
    BroadcastMessage,
    KeyRegistry,
    LocalBroadcastHub,
    NullBroadcastBackend,
    StorageChange,
    StorageChangeListener,
    SyncedStorage,
    SyncedStore,
    attach_store,
    bind_store,
)

__all__ = [
    "__version__",
    "BroadcastChannel",
    "BroadcastMessage",
    "EnvelopeDecodeError",
    "FileStorage",
    "KeyRegistry",
    "LocalBroadcastHub",
    "NullBroadcastBackend",
    "PersistedEnvelope",
    "PersistedStore",
    "SharedStorageArea",
    "StorageChange",
    "StorageChangeListener",
    "StorageError",
    "StorageView",
    "StoreSyncError",
    "SyncConfig",
    "SyncConfigError",
    "SyncContext",
    "SyncedStorage",
    "SyncedStore",
    "TransportError",
    "attach_store",
    "bind_store",
]
