"""Configuration loader and typed settings for the album engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from album_engine.models import PhotoFormat
from utils.logging import get_logger

LOGGER = get_logger(__name__)

SETTINGS_ENV_VAR = "ALBUM_ENGINE_SETTINGS"


@dataclass
class StorageConfig:
    """Locations of the metadata database and the blob root."""

    metadata_url: str = "sqlite:///data/albums.db"
    blob_root: str = "data/blobs"


@dataclass
class LimitsConfig:
    """Capacity limits enforced at write time."""

    max_albums: int = 100
    max_photos_per_album: int = 500
    max_file_size_bytes: int = 50 * 1024 * 1024
    supported_formats: tuple[PhotoFormat, ...] = tuple(PhotoFormat)


@dataclass
class ThumbnailConfig:
    """Square thumbnail geometry and JPEG quality."""

    size: int = 300
    quality: int = 85


@dataclass
class UploadConfig:
    """Bulk upload scheduling."""

    max_concurrent_uploads: int = 3


@dataclass
class Settings:
    """Top-level engine settings."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    thumbnails: ThumbnailConfig = field(default_factory=ThumbnailConfig)
    uploads: UploadConfig = field(default_factory=UploadConfig)


def _project_root() -> Path:
    """Best-effort detection of the repository root for config discovery."""

    module_path = Path(__file__).resolve()
    try:
        return module_path.parents[2]
    except IndexError:  # pragma: no cover - installed flat
        return module_path.parent


def _resolve_settings_path(settings_path: Path | str | None) -> Path:
    """Pick the settings file: explicit path, env override, cwd, then repo."""

    if settings_path:
        return Path(settings_path).expanduser().resolve()

    env_override = os.getenv(SETTINGS_ENV_VAR)
    if env_override:
        return Path(env_override).expanduser().resolve()

    candidates = [
        (Path.cwd() / "config" / "settings.yaml").resolve(),
        (_project_root() / "config" / "settings.yaml").resolve(),
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _positive_int(raw: dict[str, Any], key: str) -> int | None:
    value = raw.get(key)
    # bool is an int subclass; "true" is never a valid limit.
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    if key in raw:
        LOGGER.warning("settings_value_ignored", extra={"key": key, "value": value})
    return None


def _parse_formats(raw: Any) -> tuple[PhotoFormat, ...] | None:
    if not isinstance(raw, list):
        return None
    formats: list[PhotoFormat] = []
    for item in raw:
        try:
            fmt = PhotoFormat(str(item).lower())
        except ValueError:
            LOGGER.warning("settings_format_ignored", extra={"format_name": item})
            continue
        if fmt not in formats:
            formats.append(fmt)
    return tuple(formats) or None


def load_settings(settings_path: Path | str | None = None) -> Settings:
    """Load settings from YAML, falling back to defaults.

    Missing files, malformed YAML roots, and values of the wrong type are
    ignored so that a partial file only overrides what it names.
    """

    path = _resolve_settings_path(settings_path)
    settings = Settings()

    if not path.is_file():
        return settings

    with path.open("r", encoding="utf-8") as fp:
        raw = yaml.safe_load(fp) or {}

    if not isinstance(raw, dict):
        LOGGER.warning("settings_root_not_mapping", extra={"path": str(path)})
        return settings

    storage_raw = _as_dict(raw.get("storage"))
    if isinstance(storage_raw.get("metadata_url"), str):
        settings.storage.metadata_url = storage_raw["metadata_url"]
    if isinstance(storage_raw.get("blob_root"), str):
        settings.storage.blob_root = storage_raw["blob_root"]

    limits_raw = _as_dict(raw.get("limits"))
    limits = settings.limits
    limits.max_albums = _positive_int(limits_raw, "max_albums") or limits.max_albums
    limits.max_photos_per_album = _positive_int(limits_raw, "max_photos_per_album") or limits.max_photos_per_album
    limits.max_file_size_bytes = _positive_int(limits_raw, "max_file_size_bytes") or limits.max_file_size_bytes
    formats = _parse_formats(limits_raw.get("supported_formats"))
    if formats:
        limits.supported_formats = formats

    thumbnails_raw = _as_dict(raw.get("thumbnails"))
    settings.thumbnails.size = _positive_int(thumbnails_raw, "size") or settings.thumbnails.size
    quality = _positive_int(thumbnails_raw, "quality")
    if quality is not None and quality <= 100:
        settings.thumbnails.quality = quality

    uploads_raw = _as_dict(raw.get("uploads"))
    settings.uploads.max_concurrent_uploads = (
        _positive_int(uploads_raw, "max_concurrent_uploads") or settings.uploads.max_concurrent_uploads
    )

    LOGGER.debug("settings_loaded", extra={"path": str(path)})
    return settings


__all__ = [
    "LimitsConfig",
    "SETTINGS_ENV_VAR",
    "Settings",
    "StorageConfig",
    "ThumbnailConfig",
    "UploadConfig",
    "load_settings",
]
