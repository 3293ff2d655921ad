from __future__ import annotations

import asyncio
import errno
import os

import pytest

from album_engine.blob_store import FilesystemBlobStore, MemoryBlobStore
from album_engine.errors import CapacityError, ConsistencyError, StorageError
from album_engine.models import BlobRecord


def _record(photo_id: int, album_id: int = 1, original: bytes = b"original", thumbnail: bytes = b"thumb") -> BlobRecord:
    return BlobRecord(
        photo_id=photo_id,
        album_id=album_id,
        original=original,
        thumbnail=thumbnail,
        content_hash="a" * 64,
        created_at=1.0,
    )


def test_filesystem_store_round_trip_and_layout(tmp_path):
    async def scenario():
        store = FilesystemBlobStore(tmp_path / "blobs")
        await store.open()
        await store.put(_record(300))
        loaded = await store.get(300)
        return store, loaded

    store, loaded = asyncio.run(scenario())

    pair_dir = tmp_path / "blobs" / "2c" / "300"
    assert sorted(p.name for p in pair_dir.iterdir()) == ["original.bin", "record.json", "thumbnail.jpg"]
    assert loaded == _record(300)


def test_filesystem_store_detects_corruption(tmp_path):
    async def scenario():
        store = FilesystemBlobStore(tmp_path)
        await store.open()
        await store.put(_record(7))
        (tmp_path / "07" / "7" / "original.bin").write_bytes(b"tampered")
        await store.get(7)

    with pytest.raises(ConsistencyError):
        asyncio.run(scenario())


def test_filesystem_store_missing_pair_and_idempotent_delete(tmp_path):
    async def scenario():
        store = FilesystemBlobStore(tmp_path)
        await store.open()
        await store.put(_record(1))
        first = await store.delete(1)
        second = await store.delete(1)
        return first, second, await store.get(1), await store.exists(1)

    assert asyncio.run(scenario()) == (True, False, None, False)


def test_filesystem_store_delete_album_and_photo_ids(tmp_path):
    async def scenario():
        store = FilesystemBlobStore(tmp_path)
        await store.open()
        for photo_id, album_id in ((1, 10), (2, 10), (3, 11)):
            await store.put(_record(photo_id, album_id=album_id))
        removed = await store.delete_album(10)
        return removed, await store.photo_ids()

    assert asyncio.run(scenario()) == (2, {3})


def test_filesystem_store_maps_disk_full_to_capacity_error(tmp_path, monkeypatch):
    def _disk_full(*_args, **_kwargs):
        raise OSError(errno.ENOSPC, "No space left on device")

    async def scenario():
        store = FilesystemBlobStore(tmp_path)
        await store.open()
        monkeypatch.setattr(os, "replace", _disk_full)
        await store.put(_record(5))

    with pytest.raises(CapacityError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.retryable_by_user is True
    leftovers = [p for p in tmp_path.rglob("*") if p.name.startswith(".staging")]
    assert leftovers == []
    assert not (tmp_path / "05" / "5").exists()


def test_filesystem_store_maps_other_os_errors_to_storage_error(tmp_path, monkeypatch):
    def _denied(*_args, **_kwargs):
        raise OSError(errno.EACCES, "Permission denied")

    async def scenario():
        store = FilesystemBlobStore(tmp_path)
        await store.open()
        monkeypatch.setattr(os, "replace", _denied)
        await store.put(_record(5))

    with pytest.raises(StorageError):
        asyncio.run(scenario())


def test_filesystem_store_requires_open(tmp_path):
    with pytest.raises(RuntimeError):
        asyncio.run(FilesystemBlobStore(tmp_path).get(1))


def test_memory_store_enforces_capacity():
    async def scenario():
        store = MemoryBlobStore(capacity_bytes=20)
        await store.put(_record(1, original=b"x" * 10, thumbnail=b"y" * 5))
        with pytest.raises(CapacityError):
            await store.put(_record(2, original=b"x" * 10, thumbnail=b"y" * 5))
        # Replacing a pair only counts the difference.
        await store.put(_record(1, original=b"z" * 12, thumbnail=b"y" * 5))
        return await store.photo_ids(), store.used_bytes

    assert asyncio.run(scenario()) == ({1}, 17)
