"""Native storage change listener.

Some storage primitives notify other instances when a key changes under
them.  This path complements the broadcast transport: it still works when no
broadcast primitive is available, or when a broadcast message never arrived.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from pystoresync._redact import redact_for_log
from pystoresync.exceptions import EnvelopeDecodeError
from pystoresync.models.envelope import loads_value
from pystoresync.sync.events import StorageChange
from pystoresync.sync.registry import KeyRegistry

_logger = logging.getLogger(__name__)

ChangeCallback = Callable[[StorageChange], None]


@runtime_checkable
class ChangeNotifyingStorage(Protocol):
    """Storage primitive that emits native change notifications."""

    def add_change_listener(self, listener: ChangeCallback) -> None: ...

    def remove_change_listener(self, listener: ChangeCallback) -> None: ...


class StorageChangeListener:
    """Turn native change notifications into registry dispatches."""

    def __init__(self, registry: KeyRegistry) -> None:
        self._registry = registry

    def handle(self, change: StorageChange) -> None:
        """Decode one notification and dispatch it.

        Deletions, clears and undecodable values are dropped; decode errors
        never propagate to the caller.
        """
        key = change.key
        if not key or change.new_value is None:
            return
        try:
            parsed: Any = loads_value(change.new_value, key=key)
        except EnvelopeDecodeError:
            _logger.debug(
                "Dropping undecodable storage change key=%s value=%s",
                key,
                redact_for_log(change.new_value),
                exc_info=True,
            )
            return
        self._registry.dispatch(key, parsed)

    def attach(self, storage: Any, sink: ChangeCallback | None = None) -> Callable[[], None]:
        """Listen to *storage* if it emits native notifications.

        *sink* receives each notification instead of :meth:`handle`; the
        sync context passes its inbox here so dispatch happens on its loop.
        Returns a detacher (a no-op for storages without notifications).
        """
        if not isinstance(storage, ChangeNotifyingStorage):
            _logger.debug("Storage %s emits no change notifications", type(storage).__name__)
            return lambda: None

        callback: ChangeCallback = sink if sink is not None else self.handle
        storage.add_change_listener(callback)
        detached = False

        def detach() -> None:
            nonlocal detached
            if detached:
                return
            detached = True
            storage.remove_change_listener(callback)

        return detach
