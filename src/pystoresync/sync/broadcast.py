"""Best-effort broadcast transport.

A :class:`BroadcastChannel` is one process-side handle on a named channel.
Messages published on it reach every *other* handle of the same channel
through a pluggable backend:

- :class:`LocalBroadcastHub` for instances living in one process,
- :class:`pystoresync._mqtt.MqttBroadcastBackend` for instances on one host
  sharing an MQTT broker,
- :class:`NullBroadcastBackend` when no broadcast primitive is available.

Delivery is never guaranteed and publishing never raises.
"""

from __future__ import annotations

import copy
import logging
import secrets
import threading
from collections.abc import Callable
from typing import Any, Protocol

from pystoresync._redact import redact_for_log
from pystoresync.sync.events import BroadcastMessage

_logger = logging.getLogger(__name__)

PayloadSink = Callable[[Any], None]
MessageHandler = Callable[[BroadcastMessage], None]


class ChannelHandle(Protocol):
    """An open backend handle on one channel."""

    def post(self, payload: dict[str, Any]) -> None: ...

    def close(self) -> None: ...


class BroadcastBackend(Protocol):
    """Structural backend interface.

    ``open`` may call *deliver* from any thread; the payload it receives is
    the raw decoded message and still has to be validated.
    """

    def open(self, name: str, deliver: PayloadSink) -> ChannelHandle: ...


class _NullHandle:
    def post(self, payload: dict[str, Any]) -> None:
        return None

    def close(self) -> None:
        return None


class NullBroadcastBackend:
    """Backend used when the host has no broadcast primitive."""

    def open(self, name: str, deliver: PayloadSink) -> ChannelHandle:
        _logger.debug("No broadcast primitive available channel=%s; storage notifications only", name)
        return _NullHandle()


class _LocalHandle:
    def __init__(self, hub: LocalBroadcastHub, name: str, deliver: PayloadSink) -> None:
        self._hub = hub
        self.name = name
        self.deliver = deliver
        self.closed = False

    def post(self, payload: dict[str, Any]) -> None:
        if self.closed:
            return
        self._hub._post(self, payload)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._hub._close(self)


class LocalBroadcastHub:
    """In-process broadcast primitive.

    Every handle opened with the same channel name receives the messages
    posted by the other handles, never its own.  Payloads are deep-copied per
    receiver so instances never share mutable objects.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[str, list[_LocalHandle]] = {}

    def open(self, name: str, deliver: PayloadSink) -> ChannelHandle:
        handle = _LocalHandle(self, name, deliver)
        with self._lock:
            self._handles.setdefault(name, []).append(handle)
        return handle

    def open_count(self, name: str) -> int:
        with self._lock:
            return len(self._handles.get(name, ()))

    def _post(self, sender: _LocalHandle, payload: dict[str, Any]) -> None:
        with self._lock:
            peers = [handle for handle in self._handles.get(sender.name, ()) if handle is not sender]
        for peer in peers:
            try:
                peer.deliver(copy.deepcopy(payload))
            except Exception:
                _logger.debug("Local broadcast delivery failed channel=%s", sender.name, exc_info=True)

    def _close(self, handle: _LocalHandle) -> None:
        with self._lock:
            handles = self._handles.get(handle.name)
            if handles is None:
                return
            remaining = [h for h in handles if h is not handle]
            if remaining:
                self._handles[handle.name] = remaining
            else:
                self._handles.pop(handle.name, None)


class BroadcastChannel:
    """One process-side handle on a named broadcast channel."""

    def __init__(
        self,
        name: str,
        backend: BroadcastBackend | None = None,
        *,
        origin: str | None = None,
    ) -> None:
        self._name = name
        self._backend: BroadcastBackend = backend if backend is not None else NullBroadcastBackend()
        self._origin = origin or secrets.token_hex(8)
        self._handle: ChannelHandle | None = None
        self._handler: MessageHandler | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def origin(self) -> str:
        """Identifier stamped on outgoing messages; own messages are dropped."""
        return self._origin

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def init(self) -> None:
        """Open the channel handle, replacing (and closing) any previous one.

        Backend failures are logged and leave the channel closed; the
        context then relies on storage notifications only.
        """
        if self._handle is not None:
            self._close_handle()
        try:
            self._handle = self._backend.open(self._name, self._receive)
        except Exception:
            _logger.debug("Broadcast channel open failed channel=%s", self._name, exc_info=True)
            self._handle = None

    def on_message(self, handler: MessageHandler | None) -> None:
        """Set the single handler for received messages."""
        self._handler = handler

    def publish(self, key: str, value: Any) -> bool:
        """Send ``{key, value}`` to the other handles of this channel.

        Returns ``True`` if the message was handed to the backend.
        """
        handle = self._handle
        if handle is None:
            return False
        try:
            handle.post(BroadcastMessage(key=key, value=value, origin=self._origin).to_payload())
        except Exception:
            _logger.debug("Broadcast publish failed channel=%s key=%s", self._name, key, exc_info=True)
            return False
        return True

    def teardown(self) -> None:
        """Close the handle and release the handler."""
        self._close_handle()
        self._handler = None

    def _close_handle(self) -> None:
        handle = self._handle
        self._handle = None
        if handle is None:
            return
        try:
            handle.close()
        except Exception:
            _logger.debug("Broadcast channel close failed channel=%s", self._name, exc_info=True)

    def _receive(self, payload: Any) -> None:
        message = BroadcastMessage.from_payload(payload)
        if message is None:
            _logger.debug("Ignoring malformed broadcast payload=%s", redact_for_log(payload))
            return
        if message.origin is not None and message.origin == self._origin:
            return
        handler = self._handler
        if handler is None:
            return
        try:
            handler(message)
        except Exception:
            _logger.warning("Broadcast handler failed key=%s", message.key, exc_info=True)
