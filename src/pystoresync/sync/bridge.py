"""Store sync bridge.

Connects one store to incoming envelopes for its storage key.  Only the
fields the store persists are applied; everything else in the envelope
(other stores' fields, foreign document shapes) is filtered out.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from pystoresync.exceptions import EnvelopeDecodeError
from pystoresync.models.envelope import decode_envelope
from pystoresync.sync.registry import KeyRegistry

_logger = logging.getLogger(__name__)

ApplyPartial = Callable[[dict[str, Any]], None]
PersistedKeys = Iterable[str] | Callable[[], Iterable[str]]


class SyncedStore(Protocol):
    """Interface a store implements to take part in synchronization."""

    def set_state(self, partial: dict[str, Any]) -> None: ...

    def get_persisted_keys(self) -> list[str]: ...


def _resolve_keys(persisted_keys: PersistedKeys) -> list[str]:
    keys = persisted_keys() if callable(persisted_keys) else persisted_keys
    if isinstance(keys, str):
        return [keys]
    return list(keys)


def attach_store(
    registry: KeyRegistry,
    storage_key: str,
    apply_partial: ApplyPartial,
    persisted_keys: PersistedKeys,
) -> Callable[[], None]:
    """Apply incoming envelopes for *storage_key* as partial updates.

    *persisted_keys* may be a callable; it is then evaluated on every event,
    so a store's persisted field set may change over its lifetime.  Returns
    the registry disposer.
    """

    def handler(value: Any) -> None:
        try:
            envelope = decode_envelope(value, key=storage_key)
        except EnvelopeDecodeError:
            _logger.debug("Ignoring non-envelope update key=%s", storage_key, exc_info=True)
            return

        updates = envelope.pick(_resolve_keys(persisted_keys))
        if not updates:
            return
        apply_partial(updates)

    return registry.subscribe(storage_key, handler)


def bind_store(registry: KeyRegistry, storage_key: str, store: SyncedStore) -> Callable[[], None]:
    """:func:`attach_store` for objects implementing :class:`SyncedStore`."""
    return attach_store(registry, storage_key, store.set_state, store.get_persisted_keys)
