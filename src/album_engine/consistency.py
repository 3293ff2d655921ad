"""Parity check between the metadata store and the blob store."""

from __future__ import annotations

from album_engine.blob_store import BlobStore
from album_engine.metadata_store import MetadataStore
from album_engine.models import ReconcileReport
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "consistency"})


async def reconcile(metadata: MetadataStore, blobs: BlobStore, *, repair: bool = False) -> ReconcileReport:
    """Find photo ids present in only one store and optionally remove them.

    Orphan metadata (a row without a blob pair) is left by a crash between
    the two ingestion writes; orphan blobs by a failed cleanup after an album
    or photo delete. With ``repair`` both kinds are deleted, after which the
    stores agree again.
    """

    metadata_ids = await metadata.all_photo_ids()
    blob_ids = await blobs.photo_ids()

    report = ReconcileReport(
        orphan_metadata=sorted(metadata_ids - blob_ids),
        orphan_blobs=sorted(blob_ids - metadata_ids),
    )
    LOGGER.info(
        "reconcile_scanned",
        extra={
            "photo_rows": len(metadata_ids),
            "blob_pairs": len(blob_ids),
            "orphan_metadata": len(report.orphan_metadata),
            "orphan_blobs": len(report.orphan_blobs),
        },
    )

    if repair and not report.consistent:
        for photo_id in report.orphan_blobs:
            await blobs.delete(photo_id)
        await metadata.delete_photos(report.orphan_metadata)
        report.repaired = True
        LOGGER.warning(
            "reconcile_repaired",
            extra={"orphan_metadata": report.orphan_metadata, "orphan_blobs": report.orphan_blobs},
        )
    return report


__all__ = ["reconcile"]
