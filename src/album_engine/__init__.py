"""Local photo album persistence and ingestion engine."""

from album_engine.config import Settings, load_settings
from album_engine.engine import AlbumEngine
from album_engine.errors import (
    AlbumEngineError,
    CapacityError,
    ConflictError,
    ConsistencyError,
    DecodeFailure,
    DuplicateError,
    NotFoundError,
    ReadFailure,
    StorageError,
    ValidationError,
)
from album_engine.models import Album, Photo, PhotoFormat, SortMode, UploadFile
from album_engine.scheduler import UploadOutcome, UploadProgress, UploadReport

__all__ = [
    "Album",
    "AlbumEngine",
    "AlbumEngineError",
    "CapacityError",
    "ConflictError",
    "ConsistencyError",
    "DecodeFailure",
    "DuplicateError",
    "NotFoundError",
    "Photo",
    "PhotoFormat",
    "ReadFailure",
    "Settings",
    "SortMode",
    "StorageError",
    "UploadFile",
    "UploadOutcome",
    "UploadProgress",
    "UploadReport",
    "ValidationError",
    "load_settings",
]
