"""Durable file-backed storage.

One file per key inside a directory; processes on the same host pointing at
the same directory share the data.  Writes go to a temporary file and are
moved into place atomically, so readers see either the old or the new value.
This storage emits no change notifications; pair it with a broadcast
transport to propagate writes.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import quote, unquote

from pystoresync.exceptions import StorageError

_logger = logging.getLogger(__name__)

_SUFFIX = ".json"
# Temporary files never end in _SUFFIX, so keys() cannot pick them up.
_TMP_SUFFIX = ".tmp"


class FileStorage:
    """Directory-backed storage primitive."""

    def __init__(self, directory: str | os.PathLike[str], *, create: bool = True) -> None:
        self._directory = Path(directory)
        if create:
            self._directory.mkdir(parents=True, exist_ok=True)
        elif not self._directory.is_dir():
            raise StorageError(f"Storage directory does not exist: {self._directory}")

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        if not key:
            raise StorageError("Storage key must be non-empty", key=key)
        return self._directory / f"{quote(key, safe='')}{_SUFFIX}"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}", key=key) from exc

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".", suffix=_TMP_SUFFIX)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write {path}: {exc}", key=key) from exc
        _logger.debug("Stored key=%s bytes=%d", key, len(value))

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to remove {path}: {exc}", key=key) from exc

    def keys(self) -> list[str]:
        return sorted(
            unquote(path.name[: -len(_SUFFIX)])
            for path in self._directory.glob(f"*{_SUFFIX}")
        )
