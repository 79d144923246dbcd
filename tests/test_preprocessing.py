import numpy as np
import pytest

from models.pixel_buffer import DecodedPixelBuffer
from services.preprocessing import (
    ANALYSIS_OPTIONS,
    BACKGROUND_GRAY,
    MODEL_INPUT_SIZE,
    PreprocessOptions,
    enhance_contrast,
    foreground_ratio,
    normalize,
    preprocess,
    resize,
    segment_background,
)


def _gray_ramp(width=16, height=16, low=40, high=180):
    values = np.linspace(low, high, width * height).reshape(height, width).round().astype(np.uint8)
    pixels = np.dstack([values, values, values, np.full_like(values, 255)])
    return DecodedPixelBuffer(pixels)


def test_normalize_leaves_full_range_buffer_identical():
    pixels = np.zeros((8, 8, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    pixels[:4, :, :3] = 255
    buffer = DecodedPixelBuffer(pixels)
    assert np.array_equal(normalize(buffer).pixels, buffer.pixels)


def test_normalize_is_idempotent():
    once = normalize(_gray_ramp())
    twice = normalize(once)
    assert once.pixels[..., :3].min() == 0
    assert once.pixels[..., :3].max() == 255
    assert np.array_equal(once.pixels, twice.pixels)


def test_normalize_uniform_buffer_is_a_copy():
    buffer = DecodedPixelBuffer.filled(4, 4, (120, 120, 120, 255))
    out = normalize(buffer)
    assert out is not buffer
    assert np.array_equal(out.pixels, buffer.pixels)


def test_enhance_contrast_uses_global_channel_extremes():
    pixels = np.zeros((2, 2, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    pixels[0, 0, :3] = (50, 100, 150)
    pixels[1, 1, :3] = (150, 100, 50)
    pixels[0, 1, :3] = (100, 100, 100)
    pixels[1, 0, :3] = (100, 100, 100)
    out = enhance_contrast(DecodedPixelBuffer(pixels))
    assert out.pixels[0, 0, :3].tolist() == [0, 128, 255]
    assert out.pixels[1, 1, :3].tolist() == [255, 128, 0]


def test_segmentation_keeps_every_clearly_green_pixel():
    buffer = DecodedPixelBuffer.filled(10, 10, (50, 100, 50, 255))
    assert foreground_ratio(buffer, 1.1) == 1.0
    assert np.array_equal(segment_background(buffer, 1.1).pixels, buffer.pixels)


def test_segmentation_drops_neutral_pixels():
    buffer = DecodedPixelBuffer.filled(10, 10, (100, 100, 100, 255))
    assert foreground_ratio(buffer, 1.1) == 0.0

    gray = segment_background(buffer, 1.1)
    assert (gray.pixels[..., :3] == BACKGROUND_GRAY).all()
    assert (gray.pixels[..., 3] == 255).all()

    transparent = segment_background(buffer, 1.1, transparent_background=True)
    assert (transparent.pixels[..., 3] == 0).all()


def test_resize_stretches_to_square_model_input():
    out = resize(DecodedPixelBuffer.filled(100, 50, (10, 20, 30, 255)))
    assert (out.width, out.height) == (MODEL_INPUT_SIZE, MODEL_INPUT_SIZE)


def test_preprocess_never_mutates_or_returns_its_input():
    buffer = _gray_ramp()
    before = buffer.pixels.copy()
    options = PreprocessOptions(normalize=True, enhance_contrast=True, segment_background=True, size=32)
    out = preprocess(buffer, options)
    assert out is not buffer
    assert not buffer.released
    assert np.array_equal(buffer.pixels, before)
    assert (out.width, out.height) == (32, 32)


def test_preprocess_with_no_stages_returns_a_copy():
    buffer = _gray_ramp()
    options = PreprocessOptions(normalize=False, resize=False)
    out = preprocess(buffer, options)
    assert out is not buffer
    assert np.array_equal(out.pixels, buffer.pixels)


def test_analysis_recipe_does_not_segment():
    assert ANALYSIS_OPTIONS.normalize
    assert ANALYSIS_OPTIONS.enhance_contrast
    assert not ANALYSIS_OPTIONS.segment_background


def test_released_buffer_refuses_access():
    buffer = DecodedPixelBuffer.filled(2, 2, (1, 2, 3, 4))
    buffer.release()
    with pytest.raises(RuntimeError):
        buffer.pixels
