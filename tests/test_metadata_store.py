from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from album_engine.config import Settings
from album_engine.db import AlbumOrderRow
from album_engine.errors import CapacityError, ConflictError, DuplicateError, NotFoundError
from album_engine.metadata_store import MetadataStore
from album_engine.models import PhotoFormat


def _photo_kwargs(album_id, content_hash="a" * 64, filename="a.png"):
    return dict(
        album_id=album_id,
        filename=filename,
        content_hash=content_hash,
        size_bytes=10,
        format=PhotoFormat.PNG,
        width=2,
        height=3,
    )


def test_store_requires_open():
    with pytest.raises(RuntimeError):
        asyncio.run(MetadataStore(":memory:").count_albums())


def test_insert_photo_enforces_album_and_uniqueness():
    async def scenario():
        async with MetadataStore(":memory:") as store:
            album = await store.insert_album("Album", dt.date(2024, 1, 1))
            other = await store.insert_album("Other", dt.date(2024, 1, 1))
            first = await store.insert_photo(**_photo_kwargs(album.id))
            with pytest.raises(DuplicateError) as excinfo:
                await store.insert_photo(**_photo_kwargs(album.id, filename="b.png"))
            with pytest.raises(NotFoundError):
                await store.insert_photo(**_photo_kwargs(12345))
            elsewhere = await store.insert_photo(**_photo_kwargs(other.id))
            return first, excinfo.value, elsewhere, await store.find_any_photo_by_hash("a" * 64)

    first, error, elsewhere, any_match = asyncio.run(scenario())

    assert error.existing_photo_id == first.id
    assert elsewhere.album_id != first.album_id
    assert any_match == first


def test_delete_album_cascades_rows_and_order():
    async def scenario():
        async with MetadataStore(":memory:") as store:
            album = await store.insert_album("Album", dt.date(2024, 1, 1))
            photo = await store.insert_photo(**_photo_kwargs(album.id))
            deleted = await store.delete_album(album.id)
            return photo, deleted, await store.get_photo(photo.id), await store.list_albums_by_position()

    photo, deleted, reloaded, albums = asyncio.run(scenario())

    assert deleted == [photo.id]
    assert reloaded is None
    assert albums == []


def test_positions_continue_after_deletes():
    async def scenario():
        async with MetadataStore(":memory:") as store:
            first = await store.insert_album("a", dt.date(2024, 1, 1))
            second = await store.insert_album("b", dt.date(2024, 1, 1))
            await store.delete_album(first.id)
            third = await store.insert_album("c", dt.date(2024, 1, 1))
            return second, third

    second, third = asyncio.run(scenario())

    assert third.position == second.position + 1


def test_unique_constraint_race_surfaces_as_duplicate(monkeypatch):
    async def scenario():
        async with MetadataStore(":memory:") as store:
            album = await store.insert_album("Album", dt.date(2024, 1, 1))
            await store.insert_photo(**_photo_kwargs(album.id))
            # Simulate a concurrent writer that committed after the lookup ran.
            monkeypatch.setattr("album_engine.metadata_store._find_photo_id", lambda *_args: None)
            with pytest.raises(DuplicateError) as excinfo:
                await store.insert_photo(**_photo_kwargs(album.id, filename="racer.png"))
            return excinfo.value, await store.count_photos(album.id)

    error, count = asyncio.run(scenario())

    assert error.filename == "racer.png"
    assert count == 1


def test_other_integrity_violations_are_conflicts():
    async def scenario():
        async with MetadataStore(":memory:") as store:
            first = await store.insert_album("a", dt.date(2024, 1, 1))
            second = await store.insert_album("b", dt.date(2024, 1, 1))
            with pytest.raises(ConflictError) as excinfo:
                await store._execute(
                    lambda session: session.add(AlbumOrderRow(album_id=second.id, position=0, updated_at=0.0))
                )
            return first, excinfo.value, await store.list_albums_by_position()

    first, error, albums = asyncio.run(scenario())

    assert not isinstance(error, DuplicateError)
    assert [album.position for album in albums] == [0, 1]
    assert albums[0].id == first.id


def test_full_database_raises_capacity_error(memory_engine):
    settings = Settings()
    settings.limits.max_albums = 100_000

    async def scenario():
        async with memory_engine(settings=settings) as engine:
            with engine.metadata._engine.connect() as connection:
                connection.exec_driver_sql("PRAGMA max_page_count = 1")
            created = 0
            with pytest.raises(CapacityError) as excinfo:
                for index in range(5000):
                    await engine.create_album(f"Album {index}", "2024-01-01")
                    created += 1
            return excinfo.value, created, await engine.metadata.count_albums()

    error, created, stored = asyncio.run(scenario())

    assert error.kind == "capacity"
    assert error.retryable_by_user
    assert stored == created
