"""Blob bucket for uploaded plant photos.

Originals are written to `<image_dir>/<uuid>.<ext>` with aiofiles and served
back under the public prefix (`/images/<filename>` by default). URLs that
point at demo hosts or at transient previews are never treated as owned blobs.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

import aiofiles

from models.pixel_buffer import RawImage

logger = logging.getLogger(__name__)

DEMO_IMAGE_HOSTS: Tuple[str, ...] = ("unsplash.com",)
TRANSIENT_URL_SCHEMES: Tuple[str, ...] = ("data:", "blob:")

_SAFE_FILENAME = re.compile(r"^[0-9a-f]{32}\.(jpg|png|webp|bmp)$")


def extension_for(mime_type: str) -> str:
    """Map an image MIME type to a file extension (jpg when unknown)."""
    ext = "jpg"
    if mime_type and "/" in mime_type:
        candidate = mime_type.split("/")[-1].split(";", 1)[0].strip().lower()
        if candidate in ("jpeg", "jpg", "png", "webp", "bmp"):
            ext = "jpg" if candidate == "jpeg" else candidate
    return ext


def is_owned_url(url: Optional[str]) -> bool:
    """Return True if `url` may refer to a blob this store created."""
    if not url:
        return False
    if url.startswith(TRANSIENT_URL_SCHEMES):
        return False
    return not any(host in url for host in DEMO_IMAGE_HOSTS)


class ImageStore:
    """Write, locate and delete image blobs under one directory.

    Args:
        image_dir: Directory holding the blobs; created on first save.
        public_prefix: URL path prefix the blobs are served under.
    """

    def __init__(self, image_dir: Path | str, public_prefix: str = "/images") -> None:
        self.image_dir = Path(image_dir)
        self.public_prefix = public_prefix.rstrip("/")

    async def save(self, raw: RawImage) -> str:
        """Persist `raw` and return its public URL.

        Raises:
            ValueError: If the image bytes are empty.
            OSError: If the file cannot be written.
        """
        if not raw.data:
            raise ValueError("Image bytes are required for saving.")
        filename = f"{uuid.uuid4().hex}.{extension_for(raw.mime_type)}"
        await asyncio.to_thread(self.image_dir.mkdir, parents=True, exist_ok=True)
        async with aiofiles.open(self.image_dir / filename, "wb") as f:
            await f.write(raw.data)
        logger.debug("Stored image blob %s (%d bytes)", filename, raw.size)
        return f"{self.public_prefix}/{filename}"

    def path_for(self, filename: str) -> Optional[Path]:
        """Resolve a blob filename to its path; None for unsafe or missing names."""
        if not _SAFE_FILENAME.match(filename):
            return None
        path = self.image_dir / filename
        return path if path.is_file() else None

    async def delete_url(self, url: Optional[str]) -> bool:
        """Delete the blob referenced by `url`. Returns True if a file was removed."""
        if not is_owned_url(url):
            return False
        filename = urlparse(url).path.rsplit("/", 1)[-1]
        path = self.path_for(filename)
        if path is None:
            logger.info("No stored blob for %s", url)
            return False
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.info("Deleted image blob %s", filename)
        return True
