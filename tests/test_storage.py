"""Tests for the durable key-value storage backends."""

from __future__ import annotations

import asyncio

import pytest

from hn_digest.config import StorageConfig
from hn_digest import storage
from hn_digest.storage import FileStore, MemoryStore, StorageError, create_store


def test_memory_store_round_trip():
    store = MemoryStore()

    async def main():
        await store.set_item("a", "1")
        await store.set_item("b", "2")
        await store.multi_remove(["a", "missing"])
        return await store.get_item("a"), await store.get_item("b")

    assert asyncio.run(main()) == (None, "2")
    assert store.keys() == ["b"]


def test_file_store_writes_one_file_per_key(tmp_path):
    store = FileStore(tmp_path / "state")

    async def main():
        assert await store.get_item("summary_queue") is None
        await store.set_item("summary_queue", '[{"id": "x"}]')
        await store.set_item("summary_queue", "[]")
        value = await store.get_item("summary_queue")
        await store.remove_item("summary_queue")
        await store.remove_item("summary_queue")
        return value

    assert asyncio.run(main()) == "[]"
    assert not (tmp_path / "state" / "summary_queue.json").exists()
    assert list((tmp_path / "state").glob(".tmp-*")) == []


def test_file_store_sanitizes_keys(tmp_path):
    store = FileStore(tmp_path)
    assert store.path_for("user/../../etc").parent == tmp_path
    assert store.path_for("summary_cache_ab12").name == "summary_cache_ab12.json"


def test_create_store_selects_backend(tmp_path):
    assert isinstance(create_store(StorageConfig(backend="memory")), MemoryStore)
    file_store = create_store(StorageConfig(backend="file", directory=str(tmp_path)))
    assert isinstance(file_store, FileStore)
    assert file_store.directory == tmp_path

    with pytest.raises(ValueError, match="Unsupported storage backend"):
        create_store(StorageConfig(backend="redis"))


def test_file_store_failed_write_leaves_no_temp_files(tmp_path, monkeypatch):
    store = FileStore(tmp_path)

    def refuse(src, dst):  # noqa: ANN001
        raise OSError("read-only filesystem")

    monkeypatch.setattr(storage.os, "replace", refuse)

    with pytest.raises(StorageError, match="Failed to write queue"):
        asyncio.run(store.set_item("queue", "[]"))

    assert list(tmp_path.iterdir()) == []
