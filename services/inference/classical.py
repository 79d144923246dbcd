"""Colour-statistics classifier used when the neural model cannot be loaded.

No model weights are involved: a handful of pixel ratios are computed with
numpy and fed through fixed rules. Confidence stays in the 55-80 band so
these results read as less certain than model output.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from models.classification import ClassificationResult
from models.pixel_buffer import DecodedPixelBuffer
from services.preprocessing import foreground_mask

MIN_CONFIDENCE = 55
MAX_CONFIDENCE = 80


@dataclass(frozen=True)
class ColorFeatures:
    """Fractions are relative to visible (alpha > 0) pixels."""

    green_ratio: float
    brown_ratio: float
    yellow_ratio: float
    dark_ratio: float
    pale_ratio: float
    mean_red: float
    mean_green: float
    mean_blue: float


def extract_features(buffer: DecodedPixelBuffer) -> ColorFeatures:
    pixels = buffer.pixels
    visible = pixels[..., 3] > 0
    if not visible.any():
        raise ValueError("Image has no visible pixels")

    rgb = pixels[..., :3].astype(np.float64)
    red, green, blue = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    luminance = rgb.mean(axis=2)
    spread = rgb.max(axis=2) - rgb.min(axis=2)

    brown = (red > green) & (red > blue * 1.2) & (red >= 80) & (red <= 220)
    yellow = (red > 150) & (green > 150) & (blue < 110) & (np.abs(red - green) < 50)
    dark = luminance < 60
    pale = (luminance > 200) & (spread < 30)

    def ratio(mask: np.ndarray) -> float:
        return float((mask & visible).sum() / visible.sum())

    return ColorFeatures(
        green_ratio=ratio(foreground_mask(buffer)),
        brown_ratio=ratio(brown),
        yellow_ratio=ratio(yellow),
        dark_ratio=ratio(dark),
        pale_ratio=ratio(pale),
        mean_red=float(red[visible].mean()),
        mean_green=float(green[visible].mean()),
        mean_blue=float(blue[visible].mean()),
    )


def _confidence(strength: float) -> int:
    strength = max(0.0, min(1.0, strength))
    return int(round(MIN_CONFIDENCE + strength * (MAX_CONFIDENCE - MIN_CONFIDENCE)))


def classify_features(features: ColorFeatures) -> ClassificationResult:
    lesions = features.brown_ratio + features.yellow_ratio + features.dark_ratio + features.pale_ratio

    if features.green_ratio >= 0.6 and lesions < 0.05:
        return ClassificationResult("healthy", _confidence(features.green_ratio))
    if features.pale_ratio >= 0.15:
        return ClassificationResult("powdery_mildew", _confidence(features.pale_ratio * 2))
    if features.brown_ratio >= 0.15 and features.yellow_ratio >= 0.05:
        return ClassificationResult("early_blight", _confidence(features.brown_ratio + features.yellow_ratio))
    if features.dark_ratio >= 0.15 and features.green_ratio < 0.3:
        return ClassificationResult("late_blight", _confidence(features.dark_ratio * 2))
    if features.dark_ratio >= 0.05:
        return ClassificationResult("bacterial_spot", _confidence(features.dark_ratio * 3))
    if features.brown_ratio >= 0.1:
        disease = "common_rust" if features.mean_red > features.mean_green else "black_rot"
        return ClassificationResult(disease, _confidence(features.brown_ratio * 2))
    if features.mean_blue > features.mean_red:
        return ClassificationResult("downy_mildew", MIN_CONFIDENCE)
    return ClassificationResult("cercospora_leaf_spot", MIN_CONFIDENCE)


class ColorFeatureModel:
    """`DiseaseModel` implementation over `extract_features` + `classify_features`."""

    def predict(self, buffer: DecodedPixelBuffer) -> ClassificationResult:
        return classify_features(extract_features(buffer))


def load_color_model() -> ColorFeatureModel:
    return ColorFeatureModel()
