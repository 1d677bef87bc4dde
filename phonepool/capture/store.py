"""
Screenshot Store
================

Content-addressed storage for captured screenshots.

Images are checked with Pillow, normalized to PNG, and saved under the
SHA-256 of their PNG bytes. Identical captures map to the same file and
file names cannot be guessed from session or tracking ids.

Usage:
    store = ScreenshotStore(Path("screenshots"))
    filename = await store.save(image_bytes)
    store.public_path(filename)  # "/api/screenshots/<sha256>.png"
"""

import asyncio
import hashlib
import io
import re
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from phonepool.utils.logger import get_logger

logger = get_logger(__name__)

FILENAME_PATTERN = re.compile(r"^[0-9a-f]{64}\.png$")
PUBLIC_PREFIX = "/api/screenshots"


class UnreadableImageError(ValueError):
    """The bytes a provider returned are not a decodable image."""


def normalize_to_png(image_bytes: bytes) -> bytes:
    """
    Validate image bytes and return them as PNG.

    PNG input is returned unchanged; other formats are re-encoded.

    Raises:
        UnreadableImageError: If Pillow cannot decode the bytes.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as probe:
            image_format = probe.format
            probe.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise UnreadableImageError(f"Not a readable image: {e}") from e

    if image_format == "PNG":
        return image_bytes

    # verify() leaves the image unusable, reopen to convert
    with Image.open(io.BytesIO(image_bytes)) as image:
        if image.mode not in ("RGB", "RGBA", "L"):
            image = image.convert("RGBA")
        output = io.BytesIO()
        image.save(output, format="PNG", optimize=True)

    logger.debug("Screenshot converted to PNG", source_format=image_format)
    return output.getvalue()


class ScreenshotStore:
    """Content-addressed PNG store on the local filesystem."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    @staticmethod
    def public_path(filename: str) -> str:
        return f"{PUBLIC_PREFIX}/{filename}"

    async def save(self, image_bytes: bytes) -> str:
        """
        Store a screenshot.

        Args:
            image_bytes: Raw image bytes in any format Pillow reads.

        Returns:
            The stored file name (``<sha256>.png``).

        Raises:
            UnreadableImageError: If the bytes are not an image.
        """
        return await asyncio.to_thread(self._save_sync, image_bytes)

    def _save_sync(self, image_bytes: bytes) -> str:
        png = normalize_to_png(image_bytes)
        filename = f"{hashlib.sha256(png).hexdigest()}.png"
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / filename
        if not path.exists():
            path.write_bytes(png)
        logger.info("Screenshot stored", filename=filename, size_bytes=len(png))
        return filename

    def resolve(self, filename: str) -> Optional[Path]:
        """
        Map a requested file name to a stored file.

        Returns:
            The path, or None if the name is malformed or nothing is stored under it.
        """
        if not FILENAME_PATTERN.match(filename):
            return None
        path = self.directory / filename
        return path if path.is_file() else None
