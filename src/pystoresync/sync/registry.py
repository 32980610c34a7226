"""Key registry: storage key -> registered callbacks.

Registrations are kept per key in registration order.  The same callback
may be registered several times; every registration is a separate entry and
is invoked once per dispatch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pystoresync._redact import redact_for_log

_logger = logging.getLogger(__name__)

SyncCallback = Callable[[Any], None]


class _Registration:
    __slots__ = ("key", "callback", "active")

    def __init__(self, key: str, callback: SyncCallback) -> None:
        self.key = key
        self.callback = callback
        self.active = True


class KeyRegistry:
    """In-memory mapping from storage key to interested callbacks."""

    def __init__(self) -> None:
        self._entries: dict[str, list[_Registration]] = {}

    def subscribe(self, key: str, callback: SyncCallback) -> Callable[[], None]:
        """Register *callback* for changes observed under *key*.

        Returns a disposer.  Calling it more than once is a no-op and only
        ever removes this registration.
        """
        registration = _Registration(key, callback)
        self._entries.setdefault(key, []).append(registration)

        def unsubscribe() -> None:
            if not registration.active:
                return
            registration.active = False
            entries = self._entries.get(key)
            if entries is None:
                return
            remaining = [entry for entry in entries if entry is not registration]
            if remaining:
                self._entries[key] = remaining
            else:
                self._entries.pop(key, None)

        return unsubscribe

    def dispatch(self, key: str, value: Any) -> int:
        """Invoke every registration for *key* with *value*.

        Callbacks run in registration order.  A callback that raises is
        logged and does not stop the remaining ones.  Registrations disposed
        while the dispatch is running are skipped if not yet reached.

        Returns the number of callbacks invoked.
        """
        entries = self._entries.get(key)
        if not entries:
            return 0

        invoked = 0
        for registration in tuple(entries):
            if not registration.active:
                continue
            invoked += 1
            try:
                registration.callback(value)
            except Exception:
                _logger.warning(
                    "Sync callback failed key=%s value=%s",
                    key,
                    redact_for_log(value),
                    exc_info=True,
                )
        return invoked

    def clear(self) -> None:
        """Drop every registration."""
        for entries in self._entries.values():
            for registration in entries:
                registration.active = False
        self._entries.clear()

    def keys(self) -> list[str]:
        return list(self._entries)

    def count(self, key: str) -> int:
        return len(self._entries.get(key, ()))

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
