"""Storage primitives.

Both implement ``get_item`` / ``set_item`` / ``remove_item`` with string
values.  :class:`StorageView` additionally emits native change
notifications to the other views of its area.
"""

from pystoresync.storage.file import FileStorage
from pystoresync.storage.memory import SharedStorageArea, StorageView

__all__ = [
    "FileStorage",
    "SharedStorageArea",
    "StorageView",
]
