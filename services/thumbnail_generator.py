"""Preview generator for transient image URLs.

Low-confidence diagnoses are not persisted, so their image is returned as a
self-contained `data:image/png;base64,...` preview instead of a blob URL.

Example:
    tg = ThumbnailGenerator(max_size=(320, 320))
    url = tg.create_preview_url(raw_bytes)
"""
from __future__ import annotations

import base64
import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError


class ThumbnailGenerator:
    """Generate PNG previews from encoded image bytes.

    The preview fits within `max_size` while preserving aspect ratio.

    Args:
        max_size: Maximum width and height for the preview. Defaults to (320, 320).
        background: Colour used when flattening images with alpha to RGB.
            Defaults to white.
    """

    def __init__(self, max_size: Tuple[int, int] = (320, 320), background: Tuple[int, int, int] | None = None):
        self.max_size = max_size
        self.background = background or (255, 255, 255)

    def create_thumbnail(self, data: bytes) -> bytes:
        """Return PNG bytes of a preview for the encoded image `data`.

        Raises:
            ValueError: If the bytes cannot be opened as an image.
        """
        try:
            src = Image.open(io.BytesIO(data))
            src.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError("Decoded bytes are not a supported image format") from exc

        src = src.convert("RGBA")
        src.thumbnail(self.max_size, Image.LANCZOS)

        background = Image.new("RGB", src.size, self.background)
        background.paste(src, mask=src.split()[3])

        out_io = io.BytesIO()
        background.save(out_io, format="PNG", optimize=True)
        return out_io.getvalue()

    def create_preview_url(self, data: bytes) -> str:
        """Return a `data:image/png;base64,...` URL for `data`."""
        encoded = base64.b64encode(self.create_thumbnail(data)).decode("ascii")
        return f"data:image/png;base64,{encoded}"
