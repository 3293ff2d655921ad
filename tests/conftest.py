from __future__ import annotations

import datetime as dt
import io

import pytest
from PIL import Image

from album_engine.config import Settings
from album_engine.engine import AlbumEngine
from album_engine.models import UploadFile

TODAY = dt.date(2024, 6, 1)


def render_image(color: tuple[int, int, int], size: tuple[int, int] = (64, 48), fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def png_upload(name: str, seed: int, size: tuple[int, int] = (64, 48)) -> UploadFile:
    color = (seed * 37 % 256, seed * 91 % 256, seed * 13 % 256)
    return UploadFile(name=name, mime_type="image/png", source=render_image(color, size))


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def memory_engine(settings: Settings):
    """Factory for an unopened in-memory engine with the date pinned to ``TODAY``."""

    def _build(**kwargs) -> AlbumEngine:
        return AlbumEngine.in_memory(kwargs.pop("settings", settings), today=lambda: TODAY, **kwargs)

    return _build


@pytest.fixture
def make_upload():
    return png_upload


@pytest.fixture
def make_image():
    return render_image
