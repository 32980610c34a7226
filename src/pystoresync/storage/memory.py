"""Shared in-memory storage area with native change notifications.

A :class:`SharedStorageArea` plays the role of a host-level key-value store
shared by several instances in one process.  Each instance works through its
own :class:`StorageView`; a write through one view notifies the change
listeners of every other view, never the writer's.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from pystoresync.sync.events import StorageChange

_logger = logging.getLogger(__name__)

ChangeCallback = Callable[[StorageChange], None]


class SharedStorageArea:
    """Thread-safe string store shared by many views."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._lock = threading.RLock()
        self._items: dict[str, str] = dict(initial or {})
        self._views: list[StorageView] = []

    def view(self) -> StorageView:
        """Open a per-instance view on this area."""
        view = StorageView(self)
        with self._lock:
            self._views.append(view)
        return view

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _close_view(self, view: StorageView) -> None:
        with self._lock:
            self._views = [v for v in self._views if v is not view]

    def _read(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def _write(self, writer: StorageView, key: str, value: str | None) -> None:
        with self._lock:
            old_value = self._items.get(key)
            if value is None:
                if key not in self._items:
                    return
                del self._items[key]
            else:
                if old_value == value:
                    return
                self._items[key] = value
            peers = [v for v in self._views if v is not writer]
        self._notify(peers, StorageChange(key=key, old_value=old_value, new_value=value))

    def _clear(self, writer: StorageView) -> None:
        with self._lock:
            if not self._items:
                return
            self._items.clear()
            peers = [v for v in self._views if v is not writer]
        self._notify(peers, StorageChange(key=None, old_value=None, new_value=None))

    @staticmethod
    def _notify(peers: list[StorageView], change: StorageChange) -> None:
        for peer in peers:
            peer._emit(change)


class StorageView:
    """One instance's handle on a :class:`SharedStorageArea`."""

    def __init__(self, area: SharedStorageArea) -> None:
        self._area = area
        self._listeners: list[ChangeCallback] = []
        self._closed = False

    def get_item(self, key: str) -> str | None:
        return self._area._read(key)

    def set_item(self, key: str, value: str) -> None:
        self._area._write(self, key, value)

    def remove_item(self, key: str) -> None:
        self._area._write(self, key, None)

    def clear(self) -> None:
        self._area._clear(self)

    def add_change_listener(self, listener: ChangeCallback) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeCallback) -> None:
        self._listeners = [cb for cb in self._listeners if cb is not listener]

    def close(self) -> None:
        """Stop receiving notifications from other views."""
        if self._closed:
            return
        self._closed = True
        self._listeners = []
        self._area._close_view(self)

    def _emit(self, change: StorageChange) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(change)
            except Exception:
                _logger.warning("Storage change listener failed key=%s", change.key, exc_info=True)
