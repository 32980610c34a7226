"""Synchronization layer.

Everything that moves state between instances lives here: the key registry,
the broadcast transport, the native storage change listener, the synced
storage adapter and the per-store bridge.  :class:`pystoresync.SyncContext`
wires them together.
"""

from pystoresync.sync.bridge import SyncedStore, attach_store, bind_store
from pystoresync.sync.broadcast import BroadcastChannel, LocalBroadcastHub, NullBroadcastBackend
from pystoresync.sync.events import BroadcastMessage, StorageChange
from pystoresync.sync.listener import StorageChangeListener
from pystoresync.sync.registry import KeyRegistry
from pystoresync.sync.storage import StoragePrimitive, SyncedStorage

__all__ = [
    "BroadcastChannel",
    "BroadcastMessage",
    "KeyRegistry",
    "LocalBroadcastHub",
    "NullBroadcastBackend",
    "StorageChange",
    "StorageChangeListener",
    "StoragePrimitive",
    "SyncedStorage",
    "SyncedStore",
    "attach_store",
    "bind_store",
]
