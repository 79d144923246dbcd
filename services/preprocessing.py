"""Pixel transforms applied before classification.

Every transform returns a new `DecodedPixelBuffer`; the input buffer is
never written to. Alpha is carried through untouched except where
segmentation makes background pixels transparent.

Known limitation: `resize` stretches to a fixed square and does not
preserve aspect ratio.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np
from PIL import Image

from models.pixel_buffer import DecodedPixelBuffer

MODEL_INPUT_SIZE = 224
SEGMENT_THRESHOLD = 1.1
BACKGROUND_GRAY = 240


@dataclass(frozen=True)
class PreprocessOptions:
    """Which transforms `preprocess` applies, in order: resize, normalize, contrast, segment."""

    normalize: bool = True
    enhance_contrast: bool = False
    segment_background: bool = False
    threshold: float = SEGMENT_THRESHOLD
    transparent_background: bool = False
    resize: bool = True
    size: int = MODEL_INPUT_SIZE


# Recipe applied to every upload before it reaches the classifier tiers.
# Segmentation is left to the tiers that want it.
ANALYSIS_OPTIONS = PreprocessOptions(normalize=True, enhance_contrast=True)


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def _stretch(buffer: DecodedPixelBuffer, low: float, high: float) -> DecodedPixelBuffer:
    out = buffer.pixels.copy()
    rgb = out[..., :3].astype(np.float64)
    out[..., :3] = _to_uint8((rgb - low) / (high - low) * 255.0)
    return DecodedPixelBuffer(out)


def resize(buffer: DecodedPixelBuffer, size: int = MODEL_INPUT_SIZE) -> DecodedPixelBuffer:
    """Bilinear resize to a `size` x `size` square."""
    if buffer.width == size and buffer.height == size:
        return buffer.copy()
    resized = buffer.to_image().resize((size, size), Image.BILINEAR)
    return DecodedPixelBuffer.from_image(resized)


def normalize(buffer: DecodedPixelBuffer) -> DecodedPixelBuffer:
    """Stretch so the darkest/brightest per-pixel average luminance maps to 0/255.

    Returns an unchanged copy when the luminance range is already full or
    when every pixel has the same luminance.
    """
    luminance = buffer.pixels[..., :3].astype(np.float64).mean(axis=2)
    low, high = float(luminance.min()), float(luminance.max())
    if (low == 0 and high == 255) or high == low:
        return buffer.copy()
    return _stretch(buffer, low, high)


def enhance_contrast(buffer: DecodedPixelBuffer) -> DecodedPixelBuffer:
    """Stretch using the global min/max over all R, G and B samples."""
    rgb = buffer.pixels[..., :3]
    low, high = int(rgb.min()), int(rgb.max())
    if (low == 0 and high == 255) or high == low:
        return buffer.copy()
    return _stretch(buffer, float(low), float(high))


def foreground_mask(buffer: DecodedPixelBuffer, threshold: float = SEGMENT_THRESHOLD) -> np.ndarray:
    """Boolean HxW mask of plant pixels: green above both red and blue scaled by `threshold`."""
    rgb = buffer.pixels[..., :3].astype(np.float64)
    red, green, blue = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    return (green > red * threshold) & (green > blue * threshold)


def foreground_ratio(buffer: DecodedPixelBuffer, threshold: float = SEGMENT_THRESHOLD) -> float:
    mask = foreground_mask(buffer, threshold)
    return float(mask.mean()) if mask.size else 0.0


def segment_background(
    buffer: DecodedPixelBuffer,
    threshold: float = SEGMENT_THRESHOLD,
    transparent_background: bool = False,
) -> DecodedPixelBuffer:
    """Keep plant pixels; replace the rest with transparency or a flat light grey."""
    background = ~foreground_mask(buffer, threshold)
    out = buffer.pixels.copy()
    if transparent_background:
        out[background] = (255, 255, 255, 0)
    else:
        out[background, :3] = BACKGROUND_GRAY
    return DecodedPixelBuffer(out)


def preprocess(buffer: DecodedPixelBuffer, options: PreprocessOptions | None = None) -> DecodedPixelBuffer:
    """Run the transforms selected by `options` and return the final buffer.

    Intermediate buffers are released as soon as the next stage has
    produced its output. The caller's buffer is left untouched.
    """
    options = options or PreprocessOptions()
    stages: List = []
    if options.resize:
        stages.append(lambda b: resize(b, options.size))
    if options.normalize:
        stages.append(normalize)
    if options.enhance_contrast:
        stages.append(enhance_contrast)
    if options.segment_background:
        stages.append(lambda b: segment_background(b, options.threshold, options.transparent_background))

    current = buffer
    for stage in stages:
        produced = stage(current)
        if current is not buffer:
            current.release()
        current = produced
    return current if current is not buffer else buffer.copy()
