"""Single-file ingestion: validate, fingerprint, dedupe, derive, persist."""

from __future__ import annotations

import time

from album_engine.blob_store import BlobStore
from album_engine.config import Settings
from album_engine.errors import (
    AlbumEngineError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from album_engine.hasher import fingerprint_upload_async
from album_engine.metadata_store import MetadataStore
from album_engine.models import BlobRecord, Photo, PhotoFormat, UploadFile
from album_engine.thumbnailing import ThumbnailDeriver, read_dimensions_async
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "ingestion"})


class DuplicateGuard:
    """Reject content whose fingerprint already exists in the target album."""

    def __init__(self, metadata: MetadataStore) -> None:
        self._metadata = metadata

    async def find(self, album_id: int, content_hash: str) -> Photo | None:
        return await self._metadata.find_photo_by_hash(album_id, content_hash)

    async def find_any(self, content_hash: str) -> Photo | None:
        """Oldest photo with this fingerprint in any album."""

        return await self._metadata.find_any_photo_by_hash(content_hash)

    async def check(self, album_id: int, content_hash: str, filename: str) -> None:
        """Raise :class:`DuplicateError` naming the file if the album holds this content."""

        existing = await self.find(album_id, content_hash)
        if existing is not None:
            LOGGER.info(
                "ingest_duplicate",
                extra={
                    "album_id": album_id,
                    "file_name": filename,
                    "existing_photo_id": existing.id,
                    "existing_file_name": existing.filename,
                },
            )
            raise DuplicateError(filename, album_id, existing.id)


class IngestionPipeline:
    """Turn one :class:`UploadFile` into a committed photo and blob pair.

    The steps short-circuit in order: format and size checks before any I/O,
    album existence and capacity, fingerprint, duplicate guard, dimensions,
    thumbnail, then the metadata row followed by the blob pair. A failed blob
    write removes the metadata row again before the error propagates.
    """

    def __init__(
        self,
        metadata: MetadataStore,
        blobs: BlobStore,
        settings: Settings,
        *,
        deriver: ThumbnailDeriver | None = None,
        guard: DuplicateGuard | None = None,
    ) -> None:
        self._metadata = metadata
        self._blobs = blobs
        self._settings = settings
        self._deriver = deriver or ThumbnailDeriver(
            size=settings.thumbnails.size, quality=settings.thumbnails.quality
        )
        self._guard = guard or DuplicateGuard(metadata)

    @property
    def guard(self) -> DuplicateGuard:
        return self._guard

    def validate_upload(self, upload: UploadFile) -> PhotoFormat:
        """Check declared format and size; performs no payload I/O."""

        limits = self._settings.limits
        fmt = PhotoFormat.from_declared(upload.mime_type)
        if fmt not in limits.supported_formats:
            supported = ", ".join(item.display_name for item in limits.supported_formats)
            raise ValidationError(f"Unsupported file format: {upload.mime_type}. Supported formats: {supported}")

        if upload.size > limits.max_file_size_bytes:
            limit_mb = limits.max_file_size_bytes / (1024 * 1024)
            raise ValidationError(f"File {upload.name} exceeds the maximum size of {limit_mb:g} MB")
        return fmt

    async def _check_album(self, album_id: int) -> None:
        if await self._metadata.get_album(album_id) is None:
            raise NotFoundError("album", album_id)
        max_photos = self._settings.limits.max_photos_per_album
        if await self._metadata.count_photos(album_id) >= max_photos:
            raise ValidationError(f"Album has reached maximum photo limit ({max_photos})")

    async def ingest(self, album_id: int, upload: UploadFile) -> Photo:
        fmt = self.validate_upload(upload)
        await self._check_album(album_id)

        payload, content_hash = await fingerprint_upload_async(upload)
        await self._guard.check(album_id, content_hash, upload.name)

        width, height = await read_dimensions_async(payload)
        thumbnail = await self._deriver.derive_async(payload)

        photo = await self._metadata.insert_photo(
            album_id=album_id,
            filename=upload.name,
            content_hash=content_hash,
            size_bytes=len(payload),
            format=fmt,
            width=width,
            height=height,
            max_photos=self._settings.limits.max_photos_per_album,
        )

        record = BlobRecord(
            photo_id=photo.id,
            album_id=album_id,
            original=payload,
            thumbnail=thumbnail,
            content_hash=content_hash,
            created_at=time.time(),
        )
        try:
            await self._blobs.put(record)
        except AlbumEngineError as exc:
            await self._compensate(photo, exc)
            raise

        LOGGER.info(
            "photo_ingested",
            extra={
                "album_id": album_id,
                "photo_id": photo.id,
                "file_name": upload.name,
                "size_bytes": photo.size_bytes,
                "format_name": fmt.value,
            },
        )
        return photo

    async def _compensate(self, photo: Photo, cause: AlbumEngineError) -> None:
        """Drop the metadata row of a photo whose blob pair could not be stored."""

        LOGGER.warning(
            "ingest_blob_write_failed",
            extra={"photo_id": photo.id, "album_id": photo.album_id, "error_kind": cause.kind, "error": str(cause)},
        )
        try:
            await self._metadata.delete_photo(photo.id)
        except NotFoundError:
            LOGGER.warning("ingest_compensation_skipped", extra={"photo_id": photo.id})


__all__ = ["DuplicateGuard", "IngestionPipeline"]
