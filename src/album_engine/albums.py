"""Album create/update/delete with cascading blob cleanup."""

from __future__ import annotations

import datetime as dt
from collections.abc import Callable

from album_engine.blob_store import BlobStore
from album_engine.config import LimitsConfig
from album_engine.errors import AlbumEngineError, ConsistencyError, NotFoundError
from album_engine.metadata_store import MetadataStore
from album_engine.models import (
    Album,
    AlbumStats,
    AlbumSummary,
    SortMode,
    normalize_album_name,
    parse_album_date,
)
from album_engine.ordering import OrderingService
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "albums"})


class AlbumLifecycle:
    """Validate and apply album mutations against both stores.

    ``today`` is injectable so tests can pin the "not in the future" check.
    """

    def __init__(
        self,
        metadata: MetadataStore,
        blobs: BlobStore,
        limits: LimitsConfig,
        *,
        ordering: OrderingService | None = None,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self._metadata = metadata
        self._blobs = blobs
        self._limits = limits
        self._ordering = ordering or OrderingService(metadata)
        self._today = today

    async def create(self, name: object, date: object) -> Album:
        clean_name = normalize_album_name(name)
        album_date = parse_album_date(date, today=self._today())
        album = await self._metadata.insert_album(clean_name, album_date, max_albums=self._limits.max_albums)
        LOGGER.info("album_created", extra={"album_id": album.id, "album_name": album.name})
        return album

    async def update(self, album_id: int, name: object, date: object) -> Album:
        clean_name = normalize_album_name(name)
        album_date = parse_album_date(date, today=self._today())
        album = await self._metadata.update_album(album_id, clean_name, album_date)
        LOGGER.info("album_updated", extra={"album_id": album.id, "album_name": album.name})
        return album

    async def delete(self, album_id: int) -> list[int]:
        """Delete an album, its photos, and their blob pairs.

        Metadata goes first in a single transaction. Blob failures after that
        point raise :class:`ConsistencyError`; the leftovers are orphan blobs
        that reconciliation can remove.

        Returns:
            Ids of the photos that were deleted.
        """

        photo_ids = await self._metadata.delete_album(album_id)

        failures: list[str] = []
        for photo_id in photo_ids:
            try:
                await self._blobs.delete(photo_id)
            except AlbumEngineError as exc:
                failures.append(f"{photo_id}: {exc}")
        try:
            swept = await self._blobs.delete_album(album_id)
        except AlbumEngineError as exc:
            failures.append(f"album sweep: {exc}")
            swept = 0

        if swept:
            LOGGER.warning("album_orphan_blobs_swept", extra={"album_id": album_id, "count": swept})
        if failures:
            LOGGER.error("album_blob_cleanup_failed", extra={"album_id": album_id, "failures": failures})
            raise ConsistencyError(
                f"Album {album_id} was deleted but {len(failures)} blob cleanup step(s) failed: " + "; ".join(failures)
            )

        LOGGER.info("album_deleted_with_blobs", extra={"album_id": album_id, "photo_count": len(photo_ids)})
        return photo_ids

    async def get(self, album_id: int) -> Album | None:
        return await self._metadata.get_album(album_id)

    async def require(self, album_id: int) -> Album:
        album = await self._metadata.get_album(album_id)
        if album is None:
            raise NotFoundError("album", album_id)
        return album

    async def get_with_photo_count(self, album_id: int) -> AlbumSummary | None:
        album = await self._metadata.get_album(album_id)
        if album is None:
            return None
        return AlbumSummary(album=album, photo_count=await self._metadata.count_photos(album_id))

    async def list_with_photo_counts(self, sort_mode: SortMode | str = SortMode.CUSTOM) -> list[AlbumSummary]:
        albums = await self._ordering.resolve_order(sort_mode)
        counts = await self._metadata.photo_counts()
        return [AlbumSummary(album=album, photo_count=counts.get(album.id, 0)) for album in albums]

    async def stats(self, album_id: int) -> AlbumStats:
        await self.require(album_id)
        return await self._metadata.album_stats(album_id)


__all__ = ["AlbumLifecycle"]
