"""Keyed storage for original/thumbnail payload pairs."""

from __future__ import annotations

import asyncio
import errno
import json
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import Any, Protocol

from album_engine.errors import CapacityError, ConsistencyError, StorageError
from album_engine.hasher import BLOB_CHECKSUM_ALGO, compute_blob_checksum
from album_engine.models import BlobRecord
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "blob_store"})

_CAPACITY_ERRNOS = frozenset({errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC), errno.EFBIG})

ORIGINAL_FILE = "original.bin"
THUMBNAIL_FILE = "thumbnail.jpg"
RECORD_FILE = "record.json"
BLOB_FORMAT_VERSION = 1


def translate_os_error(exc: OSError, *, action: str, photo_id: int) -> Exception:
    """Map an ``OSError`` to :class:`CapacityError` or :class:`StorageError`."""

    if exc.errno in _CAPACITY_ERRNOS:
        return CapacityError(
            f"Storage quota exceeded while trying to {action} photo {photo_id}. "
            "Please delete some photos to free up space."
        )
    return StorageError(f"Failed to {action} photo {photo_id}: {exc}")


class BlobStore(Protocol):
    """Store, retrieve, and delete blob pairs keyed by photo id."""

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def put(self, record: BlobRecord) -> None: ...

    async def get(self, photo_id: int) -> BlobRecord | None: ...

    async def exists(self, photo_id: int) -> bool: ...

    async def delete(self, photo_id: int) -> bool: ...

    async def delete_album(self, album_id: int) -> int: ...

    async def photo_ids(self) -> set[int]: ...


class MemoryBlobStore:
    """Dict-backed blob store with an optional byte quota.

    Used by tests and by callers that do not need durability. Exceeding
    ``capacity_bytes`` raises :class:`CapacityError` without storing anything.
    """

    def __init__(self, capacity_bytes: int | None = None) -> None:
        self.capacity_bytes = capacity_bytes
        self._records: dict[int, BlobRecord] = {}
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @property
    def used_bytes(self) -> int:
        return sum(record.stored_bytes for record in self._records.values())

    async def put(self, record: BlobRecord) -> None:
        async with self._lock:
            if self.capacity_bytes is not None:
                previous = self._records.get(record.photo_id)
                reclaimed = previous.stored_bytes if previous is not None else 0
                if self.used_bytes - reclaimed + record.stored_bytes > self.capacity_bytes:
                    raise translate_os_error(
                        OSError(errno.ENOSPC, "quota exceeded"), action="store", photo_id=record.photo_id
                    )
            self._records[record.photo_id] = record

    async def get(self, photo_id: int) -> BlobRecord | None:
        async with self._lock:
            return self._records.get(photo_id)

    async def exists(self, photo_id: int) -> bool:
        async with self._lock:
            return photo_id in self._records

    async def delete(self, photo_id: int) -> bool:
        async with self._lock:
            return self._records.pop(photo_id, None) is not None

    async def delete_album(self, album_id: int) -> int:
        async with self._lock:
            doomed = [photo_id for photo_id, record in self._records.items() if record.album_id == album_id]
            for photo_id in doomed:
                del self._records[photo_id]
            return len(doomed)

    async def photo_ids(self) -> set[int]:
        async with self._lock:
            return set(self._records)


class FilesystemBlobStore:
    """Blob pairs stored as files under a root directory.

    Layout: ``<root>/<shard>/<photo_id>/`` holding ``original.bin``,
    ``thumbnail.jpg`` and ``record.json``. A pair is assembled in a hidden
    staging directory and renamed into place, so readers see either the whole
    pair or nothing. ``record.json`` carries checksums that are verified on
    every read.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self._lock = asyncio.Lock()
        self._opened = False

    async def open(self) -> None:
        if self._opened:
            return
        await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(self._sweep_staging)
        self._opened = True
        LOGGER.info("blob_store_opened", extra={"root": str(self.root)})

    async def close(self) -> None:
        self._opened = False

    def _require_open(self) -> None:
        if not self._opened:
            raise RuntimeError("FilesystemBlobStore is not open; call open() first.")

    @staticmethod
    def _shard(photo_id: int) -> str:
        return f"{photo_id % 256:02x}"

    def _pair_dir(self, photo_id: int) -> Path:
        return self.root / self._shard(photo_id) / str(photo_id)

    def _sweep_staging(self) -> None:
        """Remove staging directories left behind by an interrupted write."""

        for staging in self.root.glob("*/.staging-*"):
            shutil.rmtree(staging, ignore_errors=True)
            LOGGER.warning("blob_staging_swept", extra={"path": str(staging)})

    # --- blocking helpers (run in worker threads) -------------------------------

    def _write_pair(self, record: BlobRecord) -> None:
        target = self._pair_dir(record.photo_id)
        staging = target.parent / f".staging-{record.photo_id}-{uuid.uuid4().hex}"
        metadata = {
            "format_version": BLOB_FORMAT_VERSION,
            "photo_id": record.photo_id,
            "album_id": record.album_id,
            "content_hash": record.content_hash,
            "checksum_algo": BLOB_CHECKSUM_ALGO,
            "original_checksum": compute_blob_checksum(record.original),
            "thumbnail_checksum": compute_blob_checksum(record.thumbnail),
            "created_at": record.created_at or time.time(),
        }
        try:
            staging.mkdir(parents=True)
            for name, payload in ((ORIGINAL_FILE, record.original), (THUMBNAIL_FILE, record.thumbnail)):
                with (staging / name).open("wb") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
            (staging / RECORD_FILE).write_text(json.dumps(metadata, sort_keys=True), encoding="utf-8")
            if target.exists():
                shutil.rmtree(target)
            os.replace(staging, target)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise translate_os_error(exc, action="store", photo_id=record.photo_id) from exc

    def _read_metadata(self, pair_dir: Path) -> dict[str, Any] | None:
        try:
            raw = json.loads((pair_dir / RECORD_FILE).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            raise ConsistencyError(f"Unreadable blob record in {pair_dir}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConsistencyError(f"Malformed blob record in {pair_dir}")
        return raw

    def _read_pair(self, photo_id: int) -> BlobRecord | None:
        pair_dir = self._pair_dir(photo_id)
        metadata = self._read_metadata(pair_dir)
        if metadata is None:
            return None

        try:
            original = (pair_dir / ORIGINAL_FILE).read_bytes()
            thumbnail = (pair_dir / THUMBNAIL_FILE).read_bytes()
        except FileNotFoundError as exc:
            raise ConsistencyError(f"Blob pair for photo {photo_id} is incomplete: {exc.filename}") from exc
        except OSError as exc:
            raise translate_os_error(exc, action="read", photo_id=photo_id) from exc

        if compute_blob_checksum(original) != metadata.get("original_checksum"):
            raise ConsistencyError(f"Original payload for photo {photo_id} failed checksum verification")
        if compute_blob_checksum(thumbnail) != metadata.get("thumbnail_checksum"):
            raise ConsistencyError(f"Thumbnail for photo {photo_id} failed checksum verification")

        return BlobRecord(
            photo_id=photo_id,
            album_id=int(metadata["album_id"]),
            original=original,
            thumbnail=thumbnail,
            content_hash=str(metadata["content_hash"]),
            created_at=float(metadata.get("created_at", 0.0)),
        )

    def _remove_pair(self, photo_id: int) -> bool:
        pair_dir = self._pair_dir(photo_id)
        if not pair_dir.exists():
            return False
        try:
            shutil.rmtree(pair_dir)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise translate_os_error(exc, action="delete", photo_id=photo_id) from exc
        return True

    def _iter_pair_dirs(self) -> list[Path]:
        if not self.root.exists():
            return []
        return [
            pair_dir
            for shard in self.root.iterdir()
            if shard.is_dir() and not shard.name.startswith(".")
            for pair_dir in shard.iterdir()
            if pair_dir.is_dir() and pair_dir.name.isdigit()
        ]

    def _remove_album(self, album_id: int) -> int:
        removed = 0
        for pair_dir in self._iter_pair_dirs():
            try:
                metadata = self._read_metadata(pair_dir)
            except ConsistencyError:
                LOGGER.warning("blob_record_unreadable", extra={"path": str(pair_dir)})
                continue
            if metadata is not None and metadata.get("album_id") == album_id:
                removed += int(self._remove_pair(int(pair_dir.name)))
        return removed

    # --- async API --------------------------------------------------------------

    async def put(self, record: BlobRecord) -> None:
        self._require_open()
        async with self._lock:
            await asyncio.to_thread(self._write_pair, record)
        LOGGER.debug("blob_pair_stored", extra={"photo_id": record.photo_id, "stored_bytes": record.stored_bytes})

    async def get(self, photo_id: int) -> BlobRecord | None:
        self._require_open()
        async with self._lock:
            return await asyncio.to_thread(self._read_pair, photo_id)

    async def exists(self, photo_id: int) -> bool:
        self._require_open()
        async with self._lock:
            return await asyncio.to_thread((self._pair_dir(photo_id) / RECORD_FILE).is_file)

    async def delete(self, photo_id: int) -> bool:
        """Delete a pair; deleting an unknown id is not an error."""

        self._require_open()
        async with self._lock:
            return await asyncio.to_thread(self._remove_pair, photo_id)

    async def delete_album(self, album_id: int) -> int:
        self._require_open()
        async with self._lock:
            return await asyncio.to_thread(self._remove_album, album_id)

    async def photo_ids(self) -> set[int]:
        self._require_open()
        async with self._lock:
            pair_dirs = await asyncio.to_thread(self._iter_pair_dirs)
        return {int(pair_dir.name) for pair_dir in pair_dirs}


__all__ = [
    "BlobStore",
    "FilesystemBlobStore",
    "MemoryBlobStore",
    "translate_os_error",
]
