"""Sync context: the composition root of one instance.

A :class:`SyncContext` owns the key registry, the broadcast channel and the
storage change listener of one instance, and exposes the synced storage
adapter stores write through.  There is no module-level state: the
application constructs one context, passes it to its stores, and closes it on
shutdown.

Inbound deliveries (broadcast messages, native storage changes) may arrive on
any thread.  They are queued on the context's event loop and dispatched by a
single drain task, so store callbacks always run on that loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from pystoresync._mqtt import MqttBroadcastBackend
from pystoresync.config import SyncConfig
from pystoresync.sync.bridge import ApplyPartial, PersistedKeys, SyncedStore, attach_store, bind_store
from pystoresync.sync.broadcast import BroadcastBackend, BroadcastChannel
from pystoresync.sync.events import BroadcastMessage, StorageChange
from pystoresync.sync.listener import StorageChangeListener
from pystoresync.sync.registry import KeyRegistry, SyncCallback
from pystoresync.sync.storage import StoragePrimitive, SyncedStorage

_logger = logging.getLogger(__name__)

Delivery = BroadcastMessage | StorageChange


class SyncContext:
    """Cross-instance synchronization for one application instance.

    Usage::

        async with SyncContext(area.view(), backend=hub) as sync:
            store = PersistedStore("store:profile", sync.storage, initial={...})
            sync.bind_store(store.name, store)
    """

    def __init__(
        self,
        storage: StoragePrimitive,
        *,
        config: SyncConfig | None = None,
        backend: BroadcastBackend | None = None,
    ) -> None:
        self._config = config or SyncConfig()
        if backend is None and self._config.mqtt_enabled:
            backend = MqttBroadcastBackend.from_config(self._config)
        self._raw_storage = storage
        self._registry = KeyRegistry()
        self._channel = BroadcastChannel(self._config.channel_name, backend)
        self._listener = StorageChangeListener(self._registry)
        self._storage = SyncedStorage(storage, self._channel)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._inbox: asyncio.Queue[Delivery] | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self._detach_listener: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncContext:
        await self.start()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def storage(self) -> SyncedStorage:
        """Storage adapter stores should read from and write through."""
        return self._storage

    @property
    def registry(self) -> KeyRegistry:
        return self._registry

    @property
    def channel(self) -> BroadcastChannel:
        return self._channel

    @property
    def is_started(self) -> bool:
        return self._drain_task is not None

    async def start(self) -> None:
        """Open the channel, attach the change listener and start draining.

        Starting an already started context closes it first.
        """
        if self.is_started:
            await self.close()

        loop = asyncio.get_running_loop()
        inbox: asyncio.Queue[Delivery] = asyncio.Queue(maxsize=self._config.inbox_maxsize)
        self._loop = loop
        self._inbox = inbox
        self._drain_task = loop.create_task(self._drain(inbox), name=f"pystoresync-drain-{self._channel.origin}")

        self._channel.on_message(self._post)
        await loop.run_in_executor(None, self._channel.init)
        self._detach_listener = self._listener.attach(self._raw_storage, self._post)
        _logger.debug(
            "Sync context started channel=%s origin=%s broadcast=%s",
            self._channel.name,
            self._channel.origin,
            self._channel.is_open,
        )

    async def close(self) -> None:
        """Release the channel and listener, and clear every subscription.

        Deliveries still queued are discarded.  Afterwards the context is in
        the same state as before :meth:`start`.
        """
        detach = self._detach_listener
        self._detach_listener = None
        if detach is not None:
            detach()

        loop = self._loop
        if loop is not None:
            try:
                await loop.run_in_executor(None, self._channel.teardown)
            except Exception:
                _logger.debug("Broadcast channel teardown failed", exc_info=True)
        else:
            self._channel.teardown()

        task = self._drain_task
        self._drain_task = None
        self._inbox = None
        self._loop = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._registry.clear()
        _logger.debug("Sync context closed channel=%s", self._channel.name)

    async def flush(self) -> None:
        """Wait until every delivery queued so far has been dispatched."""
        inbox = self._inbox
        if inbox is None:
            return
        await inbox.join()

    # ------------------------------------------------------------------
    # Registry / bridge
    # ------------------------------------------------------------------

    def subscribe(self, key: str, callback: SyncCallback) -> Callable[[], None]:
        return self._registry.subscribe(key, callback)

    def dispatch(self, key: str, value: Any) -> int:
        return self._registry.dispatch(key, value)

    def attach_store(
        self,
        storage_key: str,
        apply_partial: ApplyPartial,
        persisted_keys: PersistedKeys,
    ) -> Callable[[], None]:
        return attach_store(self._registry, storage_key, apply_partial, persisted_keys)

    def bind_store(self, storage_key: str, store: SyncedStore) -> Callable[[], None]:
        return bind_store(self._registry, storage_key, store)

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    def _post(self, delivery: Delivery) -> None:
        """Queue a delivery from any thread."""
        loop = self._loop
        if loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._enqueue(delivery)
            return
        try:
            loop.call_soon_threadsafe(self._enqueue, delivery)
        except RuntimeError:
            _logger.debug("Event loop closed; dropping delivery %s", type(delivery).__name__)

    def _enqueue(self, delivery: Delivery) -> None:
        inbox = self._inbox
        if inbox is None:
            return
        try:
            inbox.put_nowait(delivery)
        except asyncio.QueueFull:
            _logger.debug("Sync inbox full (maxsize=%s); dropping delivery", inbox.maxsize)

    async def _drain(self, inbox: asyncio.Queue[Delivery]) -> None:
        while True:
            delivery = await inbox.get()
            try:
                self._deliver(delivery)
            except Exception:
                _logger.warning("Sync delivery failed", exc_info=True)
            finally:
                inbox.task_done()

    def _deliver(self, delivery: Delivery) -> None:
        if isinstance(delivery, StorageChange):
            self._listener.handle(delivery)
            return
        self._registry.dispatch(delivery.key, delivery.value)
