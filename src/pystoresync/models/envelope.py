"""Persisted envelope model.

Every synchronized store serializes its persisted fields as::

    {"state": {...persisted fields...}, "version": 0}

Only ``state`` is ever merged into a target store.  Other top-level fields
are metadata: they are kept on the model as extras and otherwise ignored.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pystoresync.exceptions import EnvelopeDecodeError


class PersistedEnvelope(BaseModel):
    """Validated shape of a value stored under a storage key."""

    model_config = ConfigDict(extra="allow")

    state: dict[str, Any] = Field(..., description="Persisted store fields")
    # Metadata: never rejects an envelope. Stores interpret it on rehydrate.
    version: Any = Field(default=None, description="Store schema version")

    def pick(self, field_names: list[str]) -> dict[str, Any]:
        """Return the subset of ``state`` named by *field_names*, in that order."""
        return {name: self.state[name] for name in field_names if name in self.state}

    def dumps(self) -> str:
        """Serialize for the storage primitive."""
        return json.dumps(self.model_dump(mode="json"), separators=(",", ":"), sort_keys=True)


def loads_value(raw: str, *, key: str | None = None) -> Any:
    """Parse a raw stored string as JSON.

    Raises
    ------
    EnvelopeDecodeError
        If *raw* is not valid JSON.
    """
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise EnvelopeDecodeError(f"Stored value is not JSON: {exc}", key=key) from exc


def decode_envelope(value: Any, *, key: str | None = None) -> PersistedEnvelope:
    """Validate an already-parsed value as a :class:`PersistedEnvelope`.

    Raises
    ------
    EnvelopeDecodeError
        If *value* is not an object with a ``state`` object.
    """
    if isinstance(value, PersistedEnvelope):
        return value
    try:
        return PersistedEnvelope.model_validate(value)
    except ValidationError as exc:
        raise EnvelopeDecodeError(f"Value is not a persisted envelope: {exc.error_count()} error(s)", key=key) from exc


def parse_envelope(raw: str, *, key: str | None = None) -> PersistedEnvelope:
    """Parse and validate a raw stored string."""
    return decode_envelope(loads_value(raw, key=key), key=key)
