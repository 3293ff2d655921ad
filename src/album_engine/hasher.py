"""Content fingerprints for uploaded payloads and blob checksums."""

from __future__ import annotations

import asyncio
import hashlib
from typing import Final

import xxhash

from album_engine.models import UploadFile
from utils.logging import get_logger

LOGGER = get_logger(__name__)

CONTENT_HASH_ALGO: Final[str] = "sha256"
BLOB_CHECKSUM_ALGO: Final[str] = "xxhash64"

_CHUNK_SIZE: Final[int] = 1 << 20


def compute_content_hash(payload: bytes) -> str:
    """Compute the content fingerprint for a payload.

    The fingerprint is a SHA-256 digest of the raw bytes, returned as a
    64-character lowercase hexadecimal string. It is what duplicate detection
    compares, so it must stay stable across releases.
    """

    hasher = hashlib.sha256()
    view = memoryview(payload)
    for offset in range(0, len(view), _CHUNK_SIZE):
        hasher.update(view[offset : offset + _CHUNK_SIZE])
    return hasher.hexdigest()


def compute_blob_checksum(payload: bytes) -> str:
    """Return a fast 64-bit checksum used to detect on-disk blob corruption."""

    return f"{xxhash.xxh64(payload).intdigest():016x}"


def fingerprint_upload(upload: UploadFile) -> tuple[bytes, str]:
    """Read an upload fully and return ``(payload, content_hash)``.

    Raises:
        ReadFailure: If the payload cannot be read completely.
    """

    payload = upload.read_bytes()
    return payload, compute_content_hash(payload)


async def fingerprint_upload_async(upload: UploadFile) -> tuple[bytes, str]:
    """Run :func:`fingerprint_upload` off the event loop."""

    return await asyncio.to_thread(fingerprint_upload, upload)


__all__ = [
    "BLOB_CHECKSUM_ALGO",
    "CONTENT_HASH_ALGO",
    "compute_blob_checksum",
    "compute_content_hash",
    "fingerprint_upload",
    "fingerprint_upload_async",
]
