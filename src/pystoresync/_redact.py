"""Helpers for safe logging of synchronized values.

Synchronized state can hold credentials (API keys kept in preferences, auth
tokens) and whole documents of arbitrary size.  Anything echoed into a log
line goes through :func:`redact_for_log` first.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_SENSITIVE_KEY_PARTS: tuple[str, ...] = (
    "password",
    "secret",
    "token",
    "apikey",
    "api_key",
    "authorization",
    "cookie",
)

_MAX_ITEMS = 20


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in _SENSITIVE_KEY_PARTS)


def _truncate(text: str, max_string: int) -> str:
    if len(text) <= max_string:
        return text
    return f"{text[:max_string]}…<+{len(text) - max_string} chars>"


def redact_for_log(value: Any, *, max_string: int = 200, _depth: int = 0) -> Any:
    """Return a log-safe copy of *value*.

    Mapping keys that look like credentials are masked, strings are
    truncated to *max_string* characters and long containers are cut after
    a fixed number of items.
    """
    if _depth > 8:
        return "<nested>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _truncate(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"

    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for index, (k, v) in enumerate(value.items()):
            if index >= _MAX_ITEMS:
                out["…"] = f"<{len(value) - _MAX_ITEMS} more keys>"
                break
            key = str(k)
            out[key] = "<redacted>" if _is_sensitive(key) else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return out

    if isinstance(value, (list, tuple)):
        items = [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value[:_MAX_ITEMS]]
        if len(value) > _MAX_ITEMS:
            items.append(f"<{len(value) - _MAX_ITEMS} more items>")
        return items

    return _truncate(repr(value), max_string)
