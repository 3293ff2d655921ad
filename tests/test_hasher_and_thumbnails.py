from __future__ import annotations

import asyncio
import hashlib
import io

import pytest
from PIL import Image

from album_engine.errors import DecodeFailure, ReadFailure
from album_engine.hasher import compute_blob_checksum, compute_content_hash, fingerprint_upload, fingerprint_upload_async
from album_engine.models import UploadFile
from album_engine.thumbnailing import ThumbnailDeriver, read_dimensions


def test_content_hash_is_sha256_hex():
    payload = b"x" * (3 * 1024 * 1024 + 17)

    digest = compute_content_hash(payload)

    assert digest == hashlib.sha256(payload).hexdigest()
    assert len(digest) == 64


def test_blob_checksum_is_stable_and_short():
    assert compute_blob_checksum(b"abc") == compute_blob_checksum(b"abc")
    assert compute_blob_checksum(b"abc") != compute_blob_checksum(b"abd")
    assert len(compute_blob_checksum(b"abc")) == 16


def test_fingerprint_upload_reads_paths(tmp_path):
    path = tmp_path / "a.png"
    path.write_bytes(b"payload")

    payload, digest = asyncio.run(fingerprint_upload_async(UploadFile.from_path(path)))

    assert payload == b"payload"
    assert digest == hashlib.sha256(b"payload").hexdigest()


def test_fingerprint_upload_rejects_missing_and_short_reads(tmp_path):
    with pytest.raises(ReadFailure):
        fingerprint_upload(UploadFile.from_path(tmp_path / "missing.jpg"))

    short = UploadFile(name="short.png", mime_type="image/png", source=b"1234", declared_size=10)
    with pytest.raises(ReadFailure):
        fingerprint_upload(short)


def test_thumbnail_is_square_jpeg_from_non_square_source(make_image):
    source = make_image((200, 10, 10), size=(640, 480), fmt="JPEG")

    thumbnail = ThumbnailDeriver().derive(source)

    image = Image.open(io.BytesIO(thumbnail))
    assert image.format == "JPEG"
    assert image.size == (300, 300)


def test_thumbnail_honors_configured_size(make_image):
    thumbnail = ThumbnailDeriver(size=64, quality=70).derive(make_image((0, 0, 255), size=(10, 200)))

    assert Image.open(io.BytesIO(thumbnail)).size == (64, 64)


def test_read_dimensions_reports_source_size(make_image):
    assert read_dimensions(make_image((1, 2, 3), size=(123, 45))) == (123, 45)


def test_undecodable_payload_raises_decode_failure():
    with pytest.raises(DecodeFailure):
        ThumbnailDeriver().derive(b"definitely not an image")
    with pytest.raises(DecodeFailure):
        read_dimensions(b"")


def test_deriver_rejects_bad_settings():
    with pytest.raises(ValueError):
        ThumbnailDeriver(size=0)
    with pytest.raises(ValueError):
        ThumbnailDeriver(quality=101)


def test_thumbnail_crops_to_center_instead_of_padding():
    source = Image.new("RGB", (640, 480), (0, 0, 255))
    source.paste((255, 0, 0), (0, 0, 80, 480))
    source.paste((255, 0, 0), (560, 0, 640, 480))
    buffer = io.BytesIO()
    source.save(buffer, format="PNG")

    thumbnail = Image.open(io.BytesIO(ThumbnailDeriver().derive(buffer.getvalue()))).convert("RGB")

    assert thumbnail.size == (300, 300)
    # Corners and edge midpoints would be padding if letterboxed, or red if the bands survived.
    for xy in ((4, 4), (295, 4), (4, 295), (295, 295), (150, 4), (150, 295), (4, 150), (295, 150)):
        red, green, blue = thumbnail.getpixel(xy)
        assert blue > 200, xy
        assert red < 60 and green < 60, xy
