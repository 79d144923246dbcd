"""Image containers shared by validation, preprocessing and inference."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any, Dict, Tuple

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class RawImage:
    """Opaque upload payload as received from a file picker or camera grab.

    Attributes:
        data: Encoded image bytes.
        mime_type: Declared MIME type (e.g. image/jpeg).
        filename: Client-side filename, used only to pick a storage extension.
    """

    data: bytes
    mime_type: str
    filename: str = "upload"

    @property
    def size(self) -> int:
        return len(self.data)


class DecodedPixelBuffer:
    """A width x height grid of 8-bit RGBA samples.

    The buffer owns its numpy array. Transforms never write into a buffer
    they were handed; they build a new one. `release()` drops the array so
    a stage can hand the memory back as soon as it is finished with it.
    """

    CHANNELS = 4

    def __init__(self, pixels: np.ndarray) -> None:
        if pixels.ndim != 3 or pixels.shape[2] != self.CHANNELS:
            raise ValueError(f"Expected an HxWx4 RGBA array, got shape {pixels.shape}")
        if pixels.dtype != np.uint8:
            pixels = np.clip(pixels, 0, 255).astype(np.uint8)
        self._pixels: np.ndarray | None = pixels

    @classmethod
    def decode(cls, raw: bytes) -> "DecodedPixelBuffer":
        """Decode encoded image bytes (any Pillow-readable format) into RGBA.

        Raises:
            PIL.UnidentifiedImageError: If the bytes are not a readable image.
        """
        with Image.open(io.BytesIO(raw)) as img:
            return cls.from_image(img)

    @classmethod
    def from_image(cls, img: Image.Image) -> "DecodedPixelBuffer":
        rgba = img.convert("RGBA")
        return cls(np.array(rgba, dtype=np.uint8))

    @classmethod
    def filled(cls, width: int, height: int, rgba: Tuple[int, int, int, int]) -> "DecodedPixelBuffer":
        """Return a buffer where every pixel has the same RGBA value."""
        pixels = np.empty((height, width, cls.CHANNELS), dtype=np.uint8)
        pixels[:, :] = rgba
        return cls(pixels)

    @classmethod
    def from_message(cls, payload: Dict[str, Any]) -> "DecodedPixelBuffer":
        """Rebuild a buffer from the dict produced by `to_message()`."""
        width = int(payload["width"])
        height = int(payload["height"])
        flat = np.frombuffer(payload["data"], dtype=np.uint8)
        if flat.size != width * height * cls.CHANNELS:
            raise ValueError("Pixel payload size does not match its dimensions")
        return cls(flat.reshape((height, width, cls.CHANNELS)).copy())

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise RuntimeError("Pixel buffer has been released")
        return self._pixels

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def released(self) -> bool:
        return self._pixels is None

    def copy(self) -> "DecodedPixelBuffer":
        return DecodedPixelBuffer(self.pixels.copy())

    def release(self) -> None:
        self._pixels = None

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def to_message(self) -> Dict[str, Any]:
        """Serialize into a picklable dict for the background worker."""
        return {"width": self.width, "height": self.height, "data": self.pixels.tobytes()}

    def __repr__(self) -> str:
        if self._pixels is None:
            return "DecodedPixelBuffer(released)"
        return f"DecodedPixelBuffer({self.width}x{self.height})"
