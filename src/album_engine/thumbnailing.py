"""Square thumbnail derivation and dimension probing."""

from __future__ import annotations

import asyncio
import io

from PIL import Image, ImageOps, UnidentifiedImageError
from PIL.Image import Resampling
from pillow_heif import register_heif_opener

from album_engine.errors import DecodeFailure
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "thumbnailing"})

# HEIC uploads decode through the same Image.open path as JPEG/PNG/WebP.
register_heif_opener()

# Pillow raises a zoo of exception types for corrupt or truncated input.
_DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError)


def _open_oriented(payload: bytes) -> Image.Image:
    """Decode a payload and apply its EXIF orientation."""

    try:
        image = Image.open(io.BytesIO(payload))
        image.load()
    except _DECODE_ERRORS as exc:
        raise DecodeFailure(f"Failed to load image: {exc}") from exc
    return ImageOps.exif_transpose(image) or image


def read_dimensions(payload: bytes) -> tuple[int, int]:
    """Return ``(width, height)`` of the image as displayed (EXIF-oriented)."""

    image = _open_oriented(payload)
    return image.width, image.height


class ThumbnailDeriver:
    """Build fixed-size square JPEG previews.

    The source is cropped to a centered square before scaling, so every
    thumbnail has the same aspect ratio regardless of the source's.
    """

    def __init__(self, size: int = 300, quality: int = 85) -> None:
        if size <= 0:
            raise ValueError(f"thumbnail size must be positive, got {size}")
        if not 1 <= quality <= 100:
            raise ValueError(f"thumbnail quality must be within 1..100, got {quality}")
        self.size = size
        self.quality = quality

    def build_thumbnail_image(self, image: Image.Image) -> Image.Image:
        """Crop ``image`` to a centered square and scale it to ``size``."""

        rgb = image.convert("RGB")
        return ImageOps.fit(rgb, (self.size, self.size), method=Resampling.LANCZOS, centering=(0.5, 0.5))

    def derive(self, payload: bytes) -> bytes:
        """Return the encoded JPEG thumbnail for an image payload.

        Raises:
            DecodeFailure: If the payload is not a decodable image.
        """

        thumbnail = self.build_thumbnail_image(_open_oriented(payload))
        buffer = io.BytesIO()
        thumbnail.save(buffer, format="JPEG", quality=self.quality)
        encoded = buffer.getvalue()
        LOGGER.debug("thumbnail_derived", extra={"size": self.size, "encoded_bytes": len(encoded)})
        return encoded

    async def derive_async(self, payload: bytes) -> bytes:
        return await asyncio.to_thread(self.derive, payload)


async def read_dimensions_async(payload: bytes) -> tuple[int, int]:
    return await asyncio.to_thread(read_dimensions, payload)


__all__ = ["ThumbnailDeriver", "read_dimensions", "read_dimensions_async"]
