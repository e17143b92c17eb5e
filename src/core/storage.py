"""Key-value storage backends for persisted resolver state.

The record cache only needs ``get``, ``set`` and ``remove``. Two
implementations are provided: an in-memory store for tests and
short-lived processes, and a store that keeps one JSON file per key.
Both can enforce a per-value size limit.
"""

from __future__ import annotations

import logging
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from src.core.errors import StorageError
from src.utils.json_utils import encoded_size, load_json, save_json

logger = logging.getLogger("hltbresolver.storage")

__all__ = ["JsonFileStore", "KeyValueStore", "MemoryStore"]

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_MAX_FILENAME_LENGTH = 50


class KeyValueStore(ABC):
    """Minimal persistent key-value store holding JSON-compatible values.

    Args:
        max_bytes: Maximum encoded size of a single value, None for no limit.
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes

    def _check_size(self, key: str, value: Any) -> None:
        if self.max_bytes is None:
            return
        size = encoded_size(value)
        if size > self.max_bytes:
            raise StorageError(f"Value for '{key}' is {size} bytes, limit is {self.max_bytes}")

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Returns the stored value or ``default``."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Stores a value.

        Raises:
            StorageError: If the value exceeds the size limit or cannot be written.
        """

    @abstractmethod
    def remove(self, key: str) -> None:
        """Deletes a key; missing keys are ignored."""


class MemoryStore(KeyValueStore):
    """Process-local store backed by a dict."""

    def __init__(self, max_bytes: int | None = None) -> None:
        super().__init__(max_bytes)
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._check_size(key, value)
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Stores each key as ``<directory>/<sanitized key>.json``.

    Args:
        directory: Directory holding the JSON files; created on first write.
        max_bytes: Maximum encoded size of a single value.
    """

    def __init__(self, directory: Path, max_bytes: int | None = None) -> None:
        super().__init__(max_bytes)
        self.directory = directory
        self._lock = threading.Lock()

    def path_for(self, key: str) -> Path:
        safe = _UNSAFE_KEY_CHARS.sub("_", key)[:_MAX_FILENAME_LENGTH] or "_"
        return self.directory / f"{safe}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self.path_for(key)
        with self._lock:
            if not path.exists():
                return default
            return load_json(path, default=default)

    def set(self, key: str, value: Any) -> None:
        self._check_size(key, value)
        with self._lock:
            if not save_json(self.path_for(key), value):
                raise StorageError(f"Failed to write '{key}' to {self.directory}")

    def remove(self, key: str) -> None:
        path = self.path_for(key)
        with self._lock:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                raise StorageError(f"Failed to remove '{key}': {exc}") from exc
