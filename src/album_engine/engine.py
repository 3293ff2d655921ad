"""Async facade bundling the stores and services behind one object."""

from __future__ import annotations

import datetime as dt
from collections.abc import Callable, Sequence
from pathlib import Path

from album_engine.albums import AlbumLifecycle
from album_engine.blob_store import BlobStore, FilesystemBlobStore, MemoryBlobStore
from album_engine.config import Settings, load_settings
from album_engine.consistency import reconcile
from album_engine.errors import AlbumEngineError, ConsistencyError, NotFoundError
from album_engine.hasher import fingerprint_upload_async
from album_engine.ingestion import IngestionPipeline
from album_engine.metadata_store import MetadataStore
from album_engine.models import (
    Album,
    AlbumStats,
    AlbumSummary,
    Photo,
    PhotoWithBlobs,
    PhotoWithThumbnail,
    ReconcileReport,
    SortMode,
    UploadFile,
)
from album_engine.ordering import OrderingService
from album_engine.scheduler import ProgressCallback, UploadReport, UploadScheduler
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "engine"})


class AlbumEngine:
    """Entry point for callers: albums, photos, ordering, and store parity.

    Use as an async context manager, or call :meth:`open` and :meth:`close`
    explicitly::

        async with AlbumEngine(load_settings()) as engine:
            album = await engine.create_album("Trip", "2024-05-01")
            report = await engine.upload_photos(album.id, files)

    Stores default to the locations in ``settings.storage``; pass
    ``metadata``/``blobs`` to substitute others (for example in tests).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        metadata: MetadataStore | None = None,
        blobs: BlobStore | None = None,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self.settings = settings or load_settings()
        self.metadata = metadata or MetadataStore(self.settings.storage.metadata_url)
        self.blobs: BlobStore = blobs or FilesystemBlobStore(Path(self.settings.storage.blob_root))

        self.ordering = OrderingService(self.metadata)
        self.albums = AlbumLifecycle(
            self.metadata, self.blobs, self.settings.limits, ordering=self.ordering, today=today
        )
        self.pipeline = IngestionPipeline(self.metadata, self.blobs, self.settings)
        self.scheduler = UploadScheduler(self.pipeline, max_concurrent=self.settings.uploads.max_concurrent_uploads)

    @classmethod
    def in_memory(
        cls,
        settings: Settings | None = None,
        *,
        capacity_bytes: int | None = None,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> AlbumEngine:
        """Engine over an in-memory database and a dict-backed blob store."""

        return cls(
            settings or Settings(),
            metadata=MetadataStore(":memory:"),
            blobs=MemoryBlobStore(capacity_bytes=capacity_bytes),
            today=today,
        )

    async def open(self) -> None:
        await self.metadata.open()
        await self.blobs.open()
        LOGGER.info("album_engine_opened")

    async def close(self) -> None:
        await self.blobs.close()
        await self.metadata.close()
        LOGGER.info("album_engine_closed")

    async def __aenter__(self) -> AlbumEngine:
        await self.open()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    # --- albums -----------------------------------------------------------------

    async def create_album(self, name: object, date: object) -> Album:
        return await self.albums.create(name, date)

    async def update_album(self, album_id: int, name: object, date: object) -> Album:
        return await self.albums.update(album_id, name, date)

    async def delete_album(self, album_id: int) -> list[int]:
        return await self.albums.delete(album_id)

    async def get_album(self, album_id: int) -> Album | None:
        return await self.albums.get(album_id)

    async def get_album_with_photo_count(self, album_id: int) -> AlbumSummary | None:
        return await self.albums.get_with_photo_count(album_id)

    async def get_album_stats(self, album_id: int) -> AlbumStats:
        return await self.albums.stats(album_id)

    async def list_albums(self, sort_mode: SortMode | str = SortMode.CUSTOM) -> list[Album]:
        return await self.ordering.resolve_order(sort_mode)

    async def list_albums_with_photo_counts(self, sort_mode: SortMode | str = SortMode.CUSTOM) -> list[AlbumSummary]:
        return await self.albums.list_with_photo_counts(sort_mode)

    async def reorder_albums(self, ordered_ids: Sequence[int]) -> list[Album]:
        return await self.ordering.reorder(ordered_ids)

    async def reset_album_order(self) -> int:
        return await self.ordering.reset()

    # --- photos -----------------------------------------------------------------

    async def upload_photos(
        self,
        album_id: int,
        files: Sequence[UploadFile],
        on_progress: ProgressCallback | None = None,
    ) -> UploadReport:
        return await self.scheduler.upload_many(album_id, files, on_progress)

    async def get_photo(self, photo_id: int) -> Photo | None:
        return await self.metadata.get_photo(photo_id)

    async def get_photo_with_blobs(self, photo_id: int) -> PhotoWithBlobs:
        photo = await self.metadata.get_photo(photo_id)
        if photo is None:
            raise NotFoundError("photo", photo_id)
        record = await self.blobs.get(photo_id)
        if record is None:
            LOGGER.error("photo_blob_missing", extra={"photo_id": photo_id, "album_id": photo.album_id})
            raise ConsistencyError(f"Photo {photo_id} has metadata but no stored payload")
        return PhotoWithBlobs(photo=photo, original=record.original, thumbnail=record.thumbnail)

    async def get_album_photos_with_thumbnails(self, album_id: int) -> list[PhotoWithThumbnail]:
        """Photos of an album in upload order, each with its thumbnail.

        A photo whose blob pair is missing or unreadable is still listed, with
        ``thumbnail=None`` and ``blob_missing=True``.
        """

        await self.albums.require(album_id)
        entries: list[PhotoWithThumbnail] = []
        for photo in await self.metadata.list_photos(album_id):
            try:
                record = await self.blobs.get(photo.id)
            except ConsistencyError as exc:
                LOGGER.warning("photo_blob_unreadable", extra={"photo_id": photo.id, "error": str(exc)})
                record = None
            if record is None:
                LOGGER.warning("photo_blob_missing", extra={"photo_id": photo.id, "album_id": album_id})
                entries.append(PhotoWithThumbnail(photo=photo, thumbnail=None, blob_missing=True))
            else:
                entries.append(PhotoWithThumbnail(photo=photo, thumbnail=record.thumbnail))
        return entries

    async def delete_photo(self, photo_id: int) -> Photo:
        """Delete a photo row, then its blob pair.

        Raises:
            NotFoundError: Unknown photo id.
            ConsistencyError: The row is gone but the blob pair could not be removed.
        """

        photo = await self.metadata.delete_photo(photo_id)
        try:
            await self.blobs.delete(photo_id)
        except AlbumEngineError as exc:
            LOGGER.error("photo_blob_cleanup_failed", extra={"photo_id": photo_id, "error": str(exc)})
            raise ConsistencyError(f"Photo {photo_id} was deleted but its blob pair remains: {exc}") from exc
        LOGGER.info("photo_deleted", extra={"photo_id": photo_id, "album_id": photo.album_id})
        return photo

    async def delete_photos(self, photo_ids: Sequence[int]) -> int:
        """Delete several photos; unknown ids are skipped. Returns the number deleted."""

        deleted = 0
        for photo_id in photo_ids:
            try:
                await self.delete_photo(photo_id)
            except NotFoundError:
                LOGGER.debug("photo_delete_skipped", extra={"photo_id": photo_id})
                continue
            deleted += 1
        return deleted

    async def find_duplicate(self, album_id: int, upload: UploadFile) -> Photo | None:
        """Photo in ``album_id`` with the same content as ``upload``, if any."""

        _payload, content_hash = await fingerprint_upload_async(upload)
        return await self.pipeline.guard.find(album_id, content_hash)

    async def find_duplicate_anywhere(self, upload: UploadFile) -> Photo | None:
        """Photo in any album with the same content as ``upload``, if any."""

        _payload, content_hash = await fingerprint_upload_async(upload)
        return await self.pipeline.guard.find_any(content_hash)

    async def reconcile(self, *, repair: bool = False) -> ReconcileReport:
        return await reconcile(self.metadata, self.blobs, repair=repair)


__all__ = ["AlbumEngine"]
