from __future__ import annotations

import asyncio

import pytest

from album_engine.config import Settings
from album_engine.engine import AlbumEngine
from album_engine.errors import NotFoundError, ValidationError


def _names(albums):
    return [album.name for album in albums]


def test_reorder_then_custom_order(memory_engine):
    async def scenario():
        async with memory_engine() as engine:
            a = await engine.create_album("a", "2024-01-01")
            b = await engine.create_album("b", "2024-01-02")
            c = await engine.create_album("c", "2024-01-03")
            await engine.reorder_albums([b.id, a.id, c.id])
            return await engine.list_albums("custom")

    albums = asyncio.run(scenario())

    assert _names(albums) == ["b", "a", "c"]
    assert [album.position for album in albums] == [0, 1, 2]


def test_date_order_breaks_ties_by_name(memory_engine):
    async def scenario():
        async with memory_engine() as engine:
            await engine.create_album("B", "2024-01-01")
            await engine.create_album("A", "2024-01-01")
            await engine.create_album("C", "2024-02-01")
            return await engine.list_albums("date"), await engine.list_albums("date_asc")

    by_date, by_date_asc = asyncio.run(scenario())

    assert _names(by_date) == ["C", "A", "B"]
    assert _names(by_date_asc) == ["A", "B", "C"]


def test_reorder_with_unknown_id_changes_nothing(memory_engine):
    async def scenario():
        async with memory_engine() as engine:
            a = await engine.create_album("a", "2024-01-01")
            b = await engine.create_album("b", "2024-01-01")
            before = await engine.list_albums()
            with pytest.raises(NotFoundError):
                await engine.reorder_albums([b.id, 424242, a.id])
            return before, await engine.list_albums()

    before, after = asyncio.run(scenario())

    assert after == before


def test_reorder_rejects_duplicate_ids(memory_engine):
    async def scenario():
        async with memory_engine() as engine:
            a = await engine.create_album("a", "2024-01-01")
            with pytest.raises(ValidationError):
                await engine.reorder_albums([a.id, a.id])

    asyncio.run(scenario())


def test_partial_reorder_keeps_unlisted_albums_after_listed(memory_engine):
    async def scenario():
        async with memory_engine() as engine:
            ids = [(await engine.create_album(name, "2024-01-01")).id for name in "abcd"]
            await engine.reorder_albums([ids[3], ids[1]])
            return await engine.list_albums()

    assert _names(asyncio.run(scenario())) == ["d", "b", "a", "c"]


def test_reset_falls_back_to_date_order(memory_engine):
    async def scenario():
        async with memory_engine() as engine:
            old = await engine.create_album("old", "2020-01-01")
            new = await engine.create_album("new", "2024-01-01")
            await engine.reorder_albums([old.id, new.id])
            cleared = await engine.reset_album_order()
            return cleared, await engine.list_albums("custom"), await engine.list_albums("date")

    cleared, custom, by_date = asyncio.run(scenario())

    assert cleared == 2
    assert custom == by_date
    assert all(album.position is None for album in custom)


def test_unknown_sort_mode_is_rejected(memory_engine):
    async def scenario():
        async with memory_engine() as engine:
            await engine.list_albums("shuffle")

    with pytest.raises(ValidationError):
        asyncio.run(scenario())


def test_order_survives_reopen(tmp_path):
    settings = Settings()
    settings.storage.metadata_url = str(tmp_path / "albums.db")
    settings.storage.blob_root = str(tmp_path / "blobs")

    async def write():
        async with AlbumEngine(settings) as engine:
            a = await engine.create_album("a", "2024-01-01")
            b = await engine.create_album("b", "2024-01-01")
            await engine.reorder_albums([b.id, a.id])

    async def read():
        async with AlbumEngine(settings) as engine:
            return await engine.list_albums()

    asyncio.run(write())

    assert _names(asyncio.run(read())) == ["b", "a"]
