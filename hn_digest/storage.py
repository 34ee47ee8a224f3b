"""
Durable key-value storage used by the summary cache and the summary queue.

Two backends are provided:
1. MemoryStore: process-local dictionary, used for tests and ephemeral runs
2. FileStore: one JSON-compatible text file per key inside a directory

Writes are crash-consistent per key (temp file + atomic rename) but are not
transactional across keys.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import os
from pathlib import Path
import re
import tempfile

from .config import StorageConfig


class StorageError(Exception):
    """Raised when the storage backend fails to read or write a key."""


class KeyValueStore(ABC):
    """Async string key-value storage interface."""

    @abstractmethod
    async def get_item(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        raise NotImplementedError

    async def multi_remove(self, keys: list[str]) -> None:
        for key in keys:
            await self.remove_item(key)


class MemoryStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data.keys())


_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class FileStore(KeyValueStore):
    """Stores each key as ``<directory>/<key>.json``.

    Args:
        directory: Directory holding the key files; created on first write
    """

    def __init__(self, directory: Path):
        self.directory = directory

    def path_for(self, key: str) -> Path:
        safe = _UNSAFE_KEY_CHARS.sub("_", key) or "_"
        return self.directory / f"{safe}.json"

    async def get_item(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc

    async def set_item(self, key: str, value: str) -> None:
        path = self.path_for(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        except OSError as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write {key}: {exc}") from exc

    async def remove_item(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to remove {key}: {exc}") from exc


def create_store(cfg: StorageConfig) -> KeyValueStore:
    """Build the storage backend named in the configuration."""
    backend = cfg.backend.lower().strip()
    if backend == "memory":
        return MemoryStore()
    if backend == "file":
        return FileStore(Path(cfg.directory))
    raise ValueError(f"Unsupported storage backend: {cfg.backend}")
