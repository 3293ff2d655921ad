"""Typed errors raised by the album engine.

Every error carries a short ``kind`` string so callers (and the upload
scheduler) can classify outcomes without ``isinstance`` ladders.
"""

from __future__ import annotations


class AlbumEngineError(Exception):
    """Base class for all engine errors."""

    kind: str = "engine"
    retryable_by_user: bool = False


class ValidationError(AlbumEngineError):
    """Input shape, range, or capacity-limit violation."""

    kind = "validation"


class NotFoundError(AlbumEngineError):
    """Operation referenced an unknown album or photo id."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity.capitalize()} with ID {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(AlbumEngineError):
    """A write was rejected because it would violate a store constraint."""

    kind = "conflict"


class DuplicateError(ConflictError):
    """Content with the same fingerprint already exists in the target album."""

    kind = "duplicate"

    def __init__(self, filename: str, album_id: int, existing_photo_id: int | None = None) -> None:
        super().__init__(f"Duplicate photo detected: {filename} already exists in this album")
        self.filename = filename
        self.album_id = album_id
        self.existing_photo_id = existing_photo_id


class ReadFailure(AlbumEngineError):
    """An uploaded payload could not be read completely."""

    kind = "read"


class DecodeFailure(AlbumEngineError):
    """A payload could not be interpreted as an image of a supported format."""

    kind = "decode"


class CapacityError(AlbumEngineError):
    """The storage medium refused a write because it is full or over quota.

    Unlike the other errors this one asks the user to free space; retrying the
    same operation afterwards is expected to succeed.
    """

    kind = "capacity"
    retryable_by_user = True


class StorageError(AlbumEngineError):
    """The storage medium failed for a reason other than running out of space."""

    kind = "storage"


class ConsistencyError(AlbumEngineError):
    """Metadata and blob stores disagree about a photo."""

    kind = "consistency"


__all__ = [
    "AlbumEngineError",
    "CapacityError",
    "ConflictError",
    "ConsistencyError",
    "DecodeFailure",
    "DuplicateError",
    "NotFoundError",
    "ReadFailure",
    "StorageError",
    "ValidationError",
]
