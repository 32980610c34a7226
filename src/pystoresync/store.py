"""Persisted state container.

:class:`PersistedStore` keeps an in-memory state dict and persists the
subset of fields it owns as a versioned envelope under one storage key::

    {"state": {<persisted fields>}, "version": <int>}

Pass it :attr:`SyncContext.storage` to broadcast every write, and bind it
with :meth:`SyncContext.bind_store` to receive other instances' writes.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pystoresync._redact import redact_for_log
from pystoresync.exceptions import EnvelopeDecodeError, StorageError
from pystoresync.models.envelope import PersistedEnvelope, parse_envelope
from pystoresync.sync.storage import StoragePrimitive

_logger = logging.getLogger(__name__)

StateListener = Callable[[dict[str, Any], dict[str, Any]], None]
Migrator = Callable[[dict[str, Any], int], dict[str, Any]]


class PersistedStore:
    """State container persisting a partialized snapshot of its state.

    Parameters
    ----------
    name : str
        Storage key the envelope is written under.
    storage : StoragePrimitive
        Where the envelope lives; usually a :class:`SyncedStorage`.
    initial : Mapping
        Initial in-memory state.
    persisted_keys : Iterable[str] or None
        Fields written to storage.  Defaults to every key of *initial*.
    version : int
        Schema version written into the envelope.
    migrate : callable or None
        ``migrate(state, stored_version) -> state`` used by :meth:`rehydrate`
        when the stored version differs.  Without it, mismatching data is
        ignored.
    """

    def __init__(
        self,
        name: str,
        storage: StoragePrimitive,
        *,
        initial: Mapping[str, Any],
        persisted_keys: Iterable[str] | None = None,
        version: int = 0,
        migrate: Migrator | None = None,
    ) -> None:
        self._name = name
        self._storage = storage
        self._state: dict[str, Any] = copy.deepcopy(dict(initial))
        if persisted_keys is None:
            self._persisted_keys = list(self._state)
        elif isinstance(persisted_keys, str):
            self._persisted_keys = [persisted_keys]
        else:
            self._persisted_keys = list(persisted_keys)
        self._version = version
        self._migrate = migrate
        self._listeners: list[StateListener] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> int:
        return self._version

    def get_state(self) -> dict[str, Any]:
        return copy.deepcopy(self._state)

    def get_persisted_keys(self) -> list[str]:
        return list(self._persisted_keys)

    def set_state(self, partial: Mapping[str, Any]) -> None:
        """Merge *partial* into the state, notify listeners and persist.

        Storage is written only when a persisted field is part of the update
        and the serialized envelope differs from what storage already holds.
        Applying an update that another instance already persisted is
        therefore a no-op on storage, which stops echo loops.
        """
        if not partial:
            return
        previous = self._state
        self._state = {**previous, **copy.deepcopy(dict(partial))}
        self._notify(previous)
        if any(key in partial for key in self._persisted_keys):
            self._persist()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener(state, previous)`` after every update."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self._listeners = [cb for cb in self._listeners if cb is not listener]

        return unsubscribe

    def envelope(self) -> PersistedEnvelope:
        state = {key: self._state[key] for key in self._persisted_keys if key in self._state}
        return PersistedEnvelope(state=copy.deepcopy(state), version=self._version)

    def rehydrate(self) -> bool:
        """Load persisted fields from storage.

        Returns ``True`` if stored fields were applied.
        """
        try:
            raw = self._storage.get_item(self._name)
        except StorageError:
            _logger.warning("Rehydrate read failed key=%s", self._name, exc_info=True)
            return False
        if raw is None:
            return False

        try:
            envelope = parse_envelope(raw, key=self._name)
        except EnvelopeDecodeError:
            _logger.warning("Ignoring undecodable stored state key=%s raw=%s", self._name, redact_for_log(raw))
            return False

        state = dict(envelope.state)
        stored_version = envelope.version if envelope.version is not None else 0
        if not isinstance(stored_version, int) or isinstance(stored_version, bool):
            _logger.warning(
                "Stored state has non-integer version %r; ignoring key=%s",
                redact_for_log(stored_version),
                self._name,
            )
            return False
        migrated = stored_version != self._version
        if migrated:
            if self._migrate is None:
                _logger.warning(
                    "Stored state version %s != %s and no migrate function; ignoring key=%s",
                    stored_version,
                    self._version,
                    self._name,
                )
                return False
            state = self._migrate(state, stored_version)

        updates = {key: state[key] for key in self._persisted_keys if key in state}
        if not updates:
            return False

        if migrated:
            # Persist under the new version.
            self.set_state(updates)
        else:
            previous = self._state
            self._state = {**previous, **copy.deepcopy(updates)}
            self._notify(previous)
        return True

    def _persist(self) -> None:
        serialized = self.envelope().dumps()
        try:
            if self._storage.get_item(self._name) == serialized:
                return
            self._storage.set_item(self._name, serialized)
        except StorageError:
            _logger.warning("Persisting state failed key=%s", self._name, exc_info=True)

    def _notify(self, previous: dict[str, Any]) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(self._state, previous)
            except Exception:
                _logger.warning("State listener failed store=%s", self._name, exc_info=True)
