from __future__ import annotations

import asyncio

from album_engine.config import Settings
from album_engine.engine import AlbumEngine
from album_engine.models import BlobRecord


def test_reconcile_reports_and_repairs_orphans(memory_engine, make_upload):
    async def scenario():
        async with memory_engine() as engine:
            album = await engine.create_album("Album", "2024-01-01")
            report = await engine.upload_photos(album.id, [make_upload(f"{i}.png", i) for i in range(3)])
            lost = report.photos[0]
            await engine.blobs.delete(lost.id)
            await engine.blobs.put(
                BlobRecord(photo_id=999, album_id=album.id, original=b"o", thumbnail=b"t", content_hash="f" * 64)
            )

            found = await engine.reconcile()
            repaired = await engine.reconcile(repair=True)
            after = await engine.reconcile()
            return lost, found, repaired, after, await engine.metadata.count_photos(album.id)

    lost, found, repaired, after, remaining = asyncio.run(scenario())

    assert found.orphan_metadata == [lost.id]
    assert found.orphan_blobs == [999]
    assert not found.repaired
    assert repaired.repaired
    assert after.consistent
    assert remaining == 2


def test_filesystem_engine_end_to_end(tmp_path, make_upload):
    settings = Settings()
    settings.storage.metadata_url = f"sqlite:///{tmp_path / 'meta' / 'albums.db'}"
    settings.storage.blob_root = str(tmp_path / "blobs")

    async def scenario():
        async with AlbumEngine(settings) as engine:
            album = await engine.create_album("Disk", "2024-01-01")
            report = await engine.upload_photos(album.id, [make_upload(f"{i}.png", i) for i in range(3)])
            listing = await engine.get_album_photos_with_thumbnails(album.id)
            check = await engine.reconcile()
            await engine.delete_album(album.id)
            return report, listing, check, await engine.blobs.photo_ids()

    report, listing, check, blob_ids = asyncio.run(scenario())

    assert len(report.succeeded) == 3
    assert sorted(entry.photo.filename for entry in listing) == ["0.png", "1.png", "2.png"]
    assert all(entry.thumbnail for entry in listing)
    assert check.consistent
    assert blob_ids == set()
