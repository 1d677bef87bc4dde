"""
Tests for Screenshot Store
==========================
"""

import hashlib
import io

import pytest
from PIL import Image

from phonepool.capture.store import (
    ScreenshotStore,
    UnreadableImageError,
    normalize_to_png,
)

from tests.conftest import make_png


def make_jpeg() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), "red").save(buffer, format="JPEG")
    return buffer.getvalue()


class TestNormalizeToPng:
    def test_png_passes_through(self, png_bytes):
        assert normalize_to_png(png_bytes) is png_bytes

    def test_jpeg_is_converted(self):
        png = normalize_to_png(make_jpeg())
        with Image.open(io.BytesIO(png)) as image:
            assert image.format == "PNG"
            assert image.size == (8, 8)

    def test_garbage_is_rejected(self):
        with pytest.raises(UnreadableImageError):
            normalize_to_png(b"definitely not an image")


class TestScreenshotStore:
    """Tests for ScreenshotStore."""

    @pytest.mark.asyncio
    async def test_save_is_content_addressed(self, store, png_bytes):
        filename = await store.save(png_bytes)

        assert filename == f"{hashlib.sha256(png_bytes).hexdigest()}.png"
        assert store.resolve(filename).read_bytes() == png_bytes
        assert await store.save(png_bytes) == filename

    @pytest.mark.asyncio
    async def test_different_images_get_different_names(self, store):
        assert await store.save(make_png("white")) != await store.save(make_png("black"))

    @pytest.mark.asyncio
    async def test_save_rejects_unreadable(self, store):
        with pytest.raises(UnreadableImageError):
            await store.save(b"\x00\x01\x02")

    def test_public_path(self):
        assert ScreenshotStore.public_path("abc.png") == "/api/screenshots/abc.png"

    @pytest.mark.parametrize("name", [
        "../secrets.png",
        "session-1.png",
        "a" * 64 + ".jpg",
        "A" * 64 + ".png",
    ])
    def test_resolve_rejects_malformed_names(self, store, name):
        assert store.resolve(name) is None

    def test_resolve_missing_file(self, store):
        assert store.resolve("0" * 64 + ".png") is None
