"""Domain records exchanged between the engine and its callers."""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final

from album_engine.errors import ReadFailure, ValidationError

ALBUM_NAME_MAX_LENGTH: Final[int] = 100
CONTENT_HASH_LENGTH: Final[int] = 64

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HEX_PATTERN = re.compile(r"^[0-9a-f]+$")


class PhotoFormat(str, Enum):
    """Image formats accepted for upload."""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    HEIC = "heic"

    @property
    def display_name(self) -> str:
        return _FORMAT_DISPLAY_NAMES[self]

    @classmethod
    def from_declared(cls, declared: str) -> PhotoFormat:
        """Parse a declared MIME type (``image/png``) or bare format name (``png``)."""

        key = (declared or "").strip().lower()
        resolved = _DECLARED_FORMATS.get(key)
        if resolved is None:
            supported = ", ".join(fmt.display_name for fmt in cls)
            raise ValidationError(f"Unsupported file format: {declared or 'unknown'}. Supported formats: {supported}")
        return resolved


_FORMAT_DISPLAY_NAMES: Final[dict[PhotoFormat, str]] = {
    PhotoFormat.JPEG: "JPEG",
    PhotoFormat.PNG: "PNG",
    PhotoFormat.WEBP: "WebP",
    PhotoFormat.HEIC: "HEIC",
}

_DECLARED_FORMATS: Final[dict[str, PhotoFormat]] = {
    "image/jpeg": PhotoFormat.JPEG,
    "image/png": PhotoFormat.PNG,
    "image/webp": PhotoFormat.WEBP,
    "image/heic": PhotoFormat.HEIC,
    "image/heif": PhotoFormat.HEIC,
    "jpeg": PhotoFormat.JPEG,
    "png": PhotoFormat.PNG,
    "webp": PhotoFormat.WEBP,
    "heic": PhotoFormat.HEIC,
}

EXTENSION_MIME_TYPES: Final[dict[str, str]] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}


class SortMode(str, Enum):
    """Album list orderings understood by the ordering service."""

    CUSTOM = "custom"
    DATE = "date"
    DATE_ASC = "date_asc"

    @classmethod
    def parse(cls, value: SortMode | str) -> SortMode:
        try:
            return cls(value)
        except ValueError as exc:
            allowed = ", ".join(mode.value for mode in cls)
            raise ValidationError(f"Unknown sort mode {value!r}; expected one of: {allowed}") from exc


def normalize_album_name(name: object) -> str:
    """Return the trimmed album name or raise :class:`ValidationError`."""

    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Album name is required and must be a non-empty string")
    trimmed = name.strip()
    if len(trimmed) > ALBUM_NAME_MAX_LENGTH:
        raise ValidationError(f"Album name must be {ALBUM_NAME_MAX_LENGTH} characters or less")
    return trimmed


def parse_album_date(value: object, *, today: dt.date | None = None) -> dt.date:
    """Parse ``YYYY-MM-DD`` strings (or dates) and reject future dates.

    ``datetime.datetime`` values are rejected: albums carry a calendar date,
    not a timestamp.
    """

    if isinstance(value, dt.datetime):
        raise ValidationError("Album date must be a calendar date, not a timestamp")
    if isinstance(value, dt.date):
        parsed = value
    elif isinstance(value, str) and _DATE_PATTERN.match(value.strip()):
        try:
            parsed = dt.date.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValidationError(f"Invalid date provided: {value}") from exc
    else:
        raise ValidationError("Album date must be in YYYY-MM-DD format")

    reference = today or dt.date.today()
    if parsed > reference:
        raise ValidationError("Album date cannot be in the future")
    return parsed


@dataclass(frozen=True)
class Album:
    """An album as stored in the metadata store."""

    id: int
    name: str
    date: dt.date
    position: int | None
    created_at: float
    updated_at: float

    def __post_init__(self) -> None:
        if normalize_album_name(self.name) != self.name:
            raise ValidationError("Album name must be stored trimmed")
        if not isinstance(self.date, dt.date) or isinstance(self.date, dt.datetime):
            raise ValidationError("Album date must be a calendar date")
        if self.position is not None and self.position < 0:
            raise ValidationError("Album position cannot be negative")


@dataclass(frozen=True)
class Photo:
    """Photo metadata; the payloads live in the blob store under ``id``."""

    id: int
    album_id: int
    filename: str
    content_hash: str
    uploaded_at: float
    size_bytes: int
    format: PhotoFormat
    width: int
    height: int

    def __post_init__(self) -> None:
        if not self.filename:
            raise ValidationError("Photo filename cannot be empty")
        if len(self.content_hash) != CONTENT_HASH_LENGTH or not _HEX_PATTERN.match(self.content_hash):
            raise ValidationError(f"Invalid content fingerprint: {self.content_hash!r}")
        if self.size_bytes < 0:
            raise ValidationError("Photo size cannot be negative")
        if self.width <= 0 or self.height <= 0:
            raise ValidationError(f"Invalid photo dimensions: {self.width}x{self.height}")
        if not isinstance(self.format, PhotoFormat):
            object.__setattr__(self, "format", PhotoFormat.from_declared(str(self.format)))


@dataclass(frozen=True)
class UploadFile:
    """A file handed to the engine for ingestion.

    ``source`` is either the raw bytes or a path that is read lazily, so that
    large batches do not hold every payload in memory at once.
    """

    name: str
    mime_type: str
    source: bytes | Path
    declared_size: int | None = None

    @classmethod
    def from_path(cls, path: Path) -> UploadFile:
        mime_type = EXTENSION_MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")
        return cls(name=path.name, mime_type=mime_type, source=path)

    @property
    def size(self) -> int:
        """Declared size, falling back to the payload length or file size."""

        if self.declared_size is not None:
            return self.declared_size
        if isinstance(self.source, (bytes, bytearray)):
            return len(self.source)
        try:
            return self.source.stat().st_size
        except OSError as exc:
            raise ReadFailure(f"Failed to read file {self.name}: {exc}") from exc

    def read_bytes(self) -> bytes:
        """Return the full payload, raising :class:`ReadFailure` on short or failed reads."""

        if isinstance(self.source, (bytes, bytearray)):
            payload = bytes(self.source)
        else:
            try:
                payload = self.source.read_bytes()
            except OSError as exc:
                raise ReadFailure(f"Failed to read file {self.name}: {exc}") from exc

        if self.declared_size is not None and len(payload) != self.declared_size:
            raise ReadFailure(
                f"Failed to read file {self.name}: expected {self.declared_size} bytes, got {len(payload)}"
            )
        return payload


@dataclass(frozen=True)
class BlobRecord:
    """Original and thumbnail payloads stored together for one photo."""

    photo_id: int
    album_id: int
    original: bytes
    thumbnail: bytes
    content_hash: str
    created_at: float = 0.0

    @property
    def stored_bytes(self) -> int:
        return len(self.original) + len(self.thumbnail)


@dataclass(frozen=True)
class AlbumSummary:
    album: Album
    photo_count: int


@dataclass(frozen=True)
class AlbumStats:
    album_id: int
    photo_count: int
    total_size: int

    @property
    def average_size(self) -> int:
        return round(self.total_size / self.photo_count) if self.photo_count else 0


@dataclass(frozen=True)
class PhotoWithThumbnail:
    """Listing entry; ``thumbnail`` is ``None`` when the blob pair is missing."""

    photo: Photo
    thumbnail: bytes | None
    blob_missing: bool = False


@dataclass(frozen=True)
class PhotoWithBlobs:
    photo: Photo
    original: bytes
    thumbnail: bytes


@dataclass
class ReconcileReport:
    """Photo ids present in only one of the two stores."""

    orphan_metadata: list[int] = field(default_factory=list)
    orphan_blobs: list[int] = field(default_factory=list)
    repaired: bool = False

    @property
    def consistent(self) -> bool:
        return not self.orphan_metadata and not self.orphan_blobs


__all__ = [
    "ALBUM_NAME_MAX_LENGTH",
    "Album",
    "AlbumStats",
    "AlbumSummary",
    "BlobRecord",
    "CONTENT_HASH_LENGTH",
    "EXTENSION_MIME_TYPES",
    "Photo",
    "PhotoFormat",
    "PhotoWithBlobs",
    "PhotoWithThumbnail",
    "ReconcileReport",
    "SortMode",
    "UploadFile",
    "normalize_album_name",
    "parse_album_date",
]
