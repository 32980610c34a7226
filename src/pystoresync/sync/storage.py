"""Synced storage adapter.

:class:`SyncedStorage` is a drop-in storage primitive: reads and deletes
pass straight through, and every write is persisted first and then published
on the broadcast channel so other instances do not have to wait for native
change propagation (which never notifies the writing instance itself).
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pystoresync.exceptions import EnvelopeDecodeError
from pystoresync.models.envelope import loads_value
from pystoresync.sync.broadcast import BroadcastChannel

_logger = logging.getLogger(__name__)


class StoragePrimitive(Protocol):
    """Key-value storage boundary.  Values are always strings."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class SyncedStorage:
    """Storage primitive that also broadcasts every write."""

    def __init__(self, raw: StoragePrimitive, channel: BroadcastChannel) -> None:
        self._raw = raw
        self._channel = channel

    @property
    def raw(self) -> StoragePrimitive:
        return self._raw

    def get_item(self, key: str) -> str | None:
        return self._raw.get_item(key)

    def set_item(self, key: str, value: str) -> None:
        """Persist *value*, then publish its decoded form.

        Values that are not JSON are persisted but not published.  Publish
        failures never fail the write.
        """
        self._raw.set_item(key, value)
        try:
            parsed: Any = loads_value(value, key=key)
        except EnvelopeDecodeError:
            _logger.debug("Not publishing non-JSON write key=%s", key)
            return
        self._channel.publish(key, parsed)

    def remove_item(self, key: str) -> None:
        # Deletions are not propagated to other instances.
        self._raw.remove_item(key)
