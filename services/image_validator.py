"""Pre-flight checks run on an upload before any processing happens.

The validator looks at file metadata (MIME type, byte length) and at pixel
statistics of the decoded image (dimensions, mean luminance). It never
raises for a bad image: callers get a `ValidationResult` with a
human-readable reason. `decode_valid()` is the raising variant used by the
analysis pipeline; it hands back the decoded buffer so the upload is decoded
once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from models.pixel_buffer import DecodedPixelBuffer, RawImage
from services.errors import ImageValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_MIN_DIMENSION = 32

# Mean of (R + G + B) / 3 over every pixel, on the 0-255 scale.
DARK_LUMINANCE_THRESHOLD = 30.0
BRIGHT_LUMINANCE_THRESHOLD = 240.0

WRONG_TYPE_MESSAGE = "Invalid file type. Please upload a JPEG, PNG, or WebP image."
UNREADABLE_MESSAGE = "The file could not be read as an image. Please upload a JPEG, PNG, or WebP image."
TOO_DARK_MESSAGE = "The image is too dark. Please provide a better lit image of your plant."
TOO_BRIGHT_MESSAGE = "The image is too bright or mostly blank. Please provide a clearer image of your plant."


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None


def mean_luminance(buffer: DecodedPixelBuffer) -> float:
    """Average per-pixel brightness, (R + G + B) / 3, over the full buffer."""
    rgb = buffer.pixels[..., :3]
    return float(rgb.mean(dtype=np.float64))


def _normalized_mime(mime_type: str) -> str:
    return (mime_type or "").lower().split(";", 1)[0].strip()


class ImageValidator:
    """Validate uploads against size, type, dimension and lighting policy."""

    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_BYTES,
        min_dimension: int = DEFAULT_MIN_DIMENSION,
        dark_threshold: float = DARK_LUMINANCE_THRESHOLD,
        bright_threshold: float = BRIGHT_LUMINANCE_THRESHOLD,
    ) -> None:
        self.max_bytes = max_bytes
        self.min_dimension = min_dimension
        self.dark_threshold = dark_threshold
        self.bright_threshold = bright_threshold

    def validate(self, raw: RawImage) -> ValidationResult:
        """Return whether `raw` may enter the pipeline, with a reason if not."""
        result = self.validate_metadata(raw)
        if not result.valid:
            return result

        try:
            buffer = DecodedPixelBuffer.decode(raw.data)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.warning("Rejected undecodable upload %s: %s", raw.filename, exc)
            return ValidationResult(False, UNREADABLE_MESSAGE)

        try:
            return self.validate_pixels(buffer)
        finally:
            buffer.release()

    def validate_metadata(self, raw: RawImage) -> ValidationResult:
        """Check MIME type and byte length only; no decoding."""
        if not _normalized_mime(raw.mime_type).startswith("image/"):
            return ValidationResult(False, WRONG_TYPE_MESSAGE)
        if raw.size == 0:
            return ValidationResult(False, "The uploaded file is empty.")
        if raw.size > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            return ValidationResult(False, f"Image size should be less than {limit_mb:g}MB.")
        return ValidationResult(True)

    def validate_pixels(self, buffer: DecodedPixelBuffer) -> ValidationResult:
        """Check dimensions and brightness of an already decoded buffer (read-only)."""
        if buffer.width < self.min_dimension or buffer.height < self.min_dimension:
            return ValidationResult(
                False,
                f"The image is too small ({buffer.width}x{buffer.height}). "
                f"Please provide an image of at least {self.min_dimension}x{self.min_dimension} pixels.",
            )

        luminance = mean_luminance(buffer)
        if luminance < self.dark_threshold:
            return ValidationResult(False, TOO_DARK_MESSAGE)
        if luminance > self.bright_threshold:
            return ValidationResult(False, TOO_BRIGHT_MESSAGE)
        return ValidationResult(True)

    def decode_valid(self, raw: RawImage) -> DecodedPixelBuffer:
        """Validate `raw` and return its decoded buffer, decoding only once.

        The caller owns the returned buffer. Blocking; run it off the event loop.

        Raises:
            ImageValidationError: If any check fails.
        """
        result = self.validate_metadata(raw)
        if not result.valid:
            raise ImageValidationError(result.error)
        try:
            buffer = DecodedPixelBuffer.decode(raw.data)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.warning("Rejected undecodable upload %s: %s", raw.filename, exc)
            raise ImageValidationError(UNREADABLE_MESSAGE) from exc
        result = self.validate_pixels(buffer)
        if not result.valid:
            buffer.release()
            raise ImageValidationError(result.error)
        return buffer
