import pytest

from models.pixel_buffer import DecodedPixelBuffer, RawImage
from services.errors import ImageValidationError
from services.image_validator import (
    TOO_BRIGHT_MESSAGE,
    TOO_DARK_MESSAGE,
    UNREADABLE_MESSAGE,
    WRONG_TYPE_MESSAGE,
    ImageValidator,
    mean_luminance,
)

from conftest import encode_image, encode_noise


def _png(width, height, color):
    return RawImage(encode_image(width, height, color), "image/png", "test.png")


def test_accepts_well_lit_leaf(leaf_upload):
    result = ImageValidator().validate(leaf_upload)
    assert result.valid
    assert result.error is None


def test_rejects_tiny_image_as_too_small():
    result = ImageValidator().validate(_png(10, 10, (40, 160, 40)))
    assert not result.valid
    assert "too small" in result.error


def test_too_small_wins_over_brightness():
    result = ImageValidator().validate(_png(10, 10, (0, 0, 0)))
    assert not result.valid
    assert "too small" in result.error


def test_rejects_dark_image():
    result = ImageValidator().validate(_png(50, 50, (5, 5, 5)))
    assert not result.valid
    assert result.error == TOO_DARK_MESSAGE


def test_rejects_blank_image():
    result = ImageValidator().validate(_png(50, 50, (255, 255, 255)))
    assert not result.valid
    assert result.error == TOO_BRIGHT_MESSAGE


def test_rejects_non_image_mime_type():
    raw = RawImage(encode_image(50, 50), "application/pdf", "scan.pdf")
    assert ImageValidator().validate(raw).error == WRONG_TYPE_MESSAGE


def test_mime_parameters_are_ignored():
    raw = RawImage(encode_image(50, 50), "image/png; charset=binary", "leaf.png")
    assert ImageValidator().validate(raw).valid


def test_rejects_oversized_file():
    raw = RawImage(encode_noise(64, 64), "image/png", "big.png")
    result = ImageValidator(max_bytes=1024).validate(raw)
    assert not result.valid
    assert result.error.startswith("Image size should be less than")


def test_rejects_empty_file():
    result = ImageValidator().validate(RawImage(b"", "image/png", "empty.png"))
    assert not result.valid
    assert "empty" in result.error


def test_rejects_undecodable_bytes():
    result = ImageValidator().validate(RawImage(b"not really a png", "image/png", "fake.png"))
    assert result.error == UNREADABLE_MESSAGE


def test_decode_valid_raises_with_reason():
    with pytest.raises(ImageValidationError, match="too dark"):
        ImageValidator().decode_valid(_png(50, 50, (5, 5, 5)))


def test_decode_valid_returns_the_decoded_buffer(leaf_upload):
    buffer = ImageValidator().decode_valid(leaf_upload)
    assert (buffer.width, buffer.height) == (64, 64)
    assert not buffer.released


def test_metadata_check_does_not_decode():
    raw = RawImage(b"not an image at all", "image/png", "fake.png")
    assert ImageValidator().validate_metadata(raw).valid
    assert not ImageValidator().validate_metadata(RawImage(b"x", "text/plain")).valid


def test_validate_pixels_does_not_release_callers_buffer():
    buffer = DecodedPixelBuffer.filled(40, 40, (90, 90, 90, 255))
    ImageValidator().validate_pixels(buffer)
    assert not buffer.released
    assert mean_luminance(buffer) == pytest.approx(90.0)
