"""Inbound deliveries.

Both cross-instance paths (broadcast transport and native storage change
notifications) are turned into one of these immutable records before they
reach the context inbox.  Only the context drain task dispatches them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class BroadcastMessage:
    """One ``{key, value}`` message received on the broadcast channel."""

    key: str
    value: Any
    origin: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"key": self.key, "value": self.value}
        if self.origin is not None:
            payload["origin"] = self.origin
        return payload

    @classmethod
    def from_payload(cls, payload: Any) -> BroadcastMessage | None:
        """Build a message from a received payload, or ``None`` if malformed.

        A payload is malformed when it is not a mapping, has no non-empty
        string ``key``, or carries no ``value`` entry at all.  ``None`` is a
        valid value.
        """
        if not isinstance(payload, Mapping):
            return None
        key = payload.get("key")
        if not isinstance(key, str) or not key:
            return None
        if "value" not in payload:
            return None
        origin = payload.get("origin")
        return cls(key=key, value=payload["value"], origin=origin if isinstance(origin, str) else None)


@dataclass(frozen=True)
class StorageChange:
    """Native change notification emitted by a storage primitive.

    ``new_value`` is ``None`` for deletions; ``key`` is ``None`` when the
    whole storage area was cleared.
    """

    key: str | None
    old_value: str | None
    new_value: str | None
