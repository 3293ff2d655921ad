"""Bounded-concurrency bulk uploads with per-item error isolation."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Literal, Union

from album_engine.errors import AlbumEngineError
from album_engine.ingestion import IngestionPipeline
from album_engine.models import Photo, UploadFile
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "scheduler"})

UploadStatus = Literal["succeeded", "duplicate", "failed"]


@dataclass(frozen=True)
class UploadOutcome:
    file_name: str
    size: int | None
    status: UploadStatus
    photo: Photo | None = None
    error: str | None = None
    error_kind: str | None = None


@dataclass(frozen=True)
class UploadProgress:
    """Snapshot passed to progress callbacks after each completed item."""

    current: int
    total: int
    outcome: UploadOutcome


@dataclass
class UploadReport:
    succeeded: list[UploadOutcome] = field(default_factory=list)
    duplicates: list[UploadOutcome] = field(default_factory=list)
    failed: list[UploadOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.duplicates) + len(self.failed)

    @property
    def photos(self) -> list[Photo]:
        return [outcome.photo for outcome in self.succeeded if outcome.photo is not None]


ProgressCallback = Callable[[UploadProgress], Union[None, Awaitable[None]]]


class UploadScheduler:
    """Run an ingestion pipeline over many files, at most ``max_concurrent`` at a time.

    The window slides: a new item starts as soon as any running item
    finishes. Errors never escape an item; each one becomes a ``failed`` or
    ``duplicate`` outcome in the report.
    """

    def __init__(self, pipeline: IngestionPipeline, max_concurrent: int = 3) -> None:
        if max_concurrent <= 0:
            raise ValueError(f"max_concurrent must be positive, got {max_concurrent}")
        self._pipeline = pipeline
        self.max_concurrent = max_concurrent

    async def upload_many(
        self,
        album_id: int,
        files: Sequence[UploadFile],
        on_progress: ProgressCallback | None = None,
    ) -> UploadReport:
        total = len(files)
        if total == 0:
            return UploadReport()

        semaphore = asyncio.Semaphore(self.max_concurrent)
        progress_lock = asyncio.Lock()
        completed = 0
        outcomes: list[UploadOutcome | None] = [None] * total

        LOGGER.info("upload_batch_started", extra={"album_id": album_id, "total": total})

        async def _run(index: int, upload: UploadFile) -> None:
            nonlocal completed
            async with semaphore:
                outcome = await self._ingest_one(album_id, upload)
            outcomes[index] = outcome
            async with progress_lock:
                completed += 1
                if on_progress is not None:
                    await _notify(on_progress, UploadProgress(current=completed, total=total, outcome=outcome))

        await asyncio.gather(*(_run(index, upload) for index, upload in enumerate(files)))

        report = UploadReport()
        for outcome in outcomes:
            if outcome is None:  # pragma: no cover - every task stores an outcome
                continue
            if outcome.status == "succeeded":
                report.succeeded.append(outcome)
            elif outcome.status == "duplicate":
                report.duplicates.append(outcome)
            else:
                report.failed.append(outcome)

        LOGGER.info(
            "upload_batch_finished",
            extra={
                "album_id": album_id,
                "succeeded": len(report.succeeded),
                "duplicates": len(report.duplicates),
                "failed": len(report.failed),
            },
        )
        return report

    async def _ingest_one(self, album_id: int, upload: UploadFile) -> UploadOutcome:
        size = _safe_size(upload)
        try:
            photo = await self._pipeline.ingest(album_id, upload)
        except AlbumEngineError as exc:
            status: UploadStatus = "duplicate" if exc.kind == "duplicate" else "failed"
            if status == "failed":
                LOGGER.warning(
                    "upload_item_failed",
                    extra={"album_id": album_id, "file_name": upload.name, "error_kind": exc.kind, "error": str(exc)},
                )
            return UploadOutcome(upload.name, size, status, error=str(exc), error_kind=exc.kind)
        except Exception as exc:
            LOGGER.exception("upload_item_internal_error", extra={"album_id": album_id, "file_name": upload.name})
            return UploadOutcome(upload.name, size, "failed", error=str(exc), error_kind="internal")
        return UploadOutcome(upload.name, size, "succeeded", photo=photo)


def _safe_size(upload: UploadFile) -> int | None:
    try:
        return upload.size
    except AlbumEngineError:
        return None


async def _notify(callback: ProgressCallback, progress: UploadProgress) -> None:
    """Invoke a progress callback; its failures are logged and never abort the batch."""

    try:
        result = callback(progress)
        if inspect.isawaitable(result):
            await result
    except Exception:
        LOGGER.exception(
            "upload_progress_callback_failed",
            extra={"current": progress.current, "total": progress.total, "file_name": progress.outcome.file_name},
        )


__all__ = ["ProgressCallback", "UploadOutcome", "UploadProgress", "UploadReport", "UploadScheduler"]
