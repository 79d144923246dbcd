"""MobileNetV2 backed disease model.

An ImageNet MobileNetV2 is used as a generic feature classifier and its
top label is mapped onto the disease classes with colour heuristics. There
is no plant-specific classification head; swap the factory named by
PLANT_MODEL_FACTORY to plug in a trained model.

torch and torchvision are imported when the model is built, so importing
this module stays cheap.
"""

from __future__ import annotations

import logging
from typing import Sequence, Tuple

import numpy as np

from models.classification import ClassificationResult
from models.pixel_buffer import DecodedPixelBuffer

logger = logging.getLogger(__name__)

INPUT_SIZE = 224
IMAGENET_MEAN = (0.485, 0.456, 0.406)
IMAGENET_STD = (0.229, 0.224, 0.225)


def map_prediction(label: str, probability: float, channel_means: Tuple[float, float, float]) -> str:
    """Map a generic ImageNet label and probability onto a disease identifier."""
    label = label.lower()
    avg_red, avg_green, avg_blue = channel_means

    if probability < 0.6:
        if "flower" in label or "petal" in label:
            return "powdery_mildew"
        if "fruit" in label:
            return "black_rot"
        return "late_blight"
    if "green" in label and probability > 0.8:
        return "healthy"
    if "leaf" in label or "plant" in label:
        if avg_red > avg_green * 1.2:
            return "early_blight"
        if avg_green < 100:
            return "bacterial_spot"
        if avg_blue > avg_red:
            return "downy_mildew"
        return "cercospora_leaf_spot"
    if "corn" in label or "crop" in label:
        return "common_rust"
    return "northern_leaf_blight"


class MobileNetDiseaseModel:
    """Runs MobileNetV2 on CPU (or `device`) and maps its output to a disease."""

    def __init__(self, device: str = "cpu") -> None:
        import torch
        from torchvision.models import MobileNet_V2_Weights, mobilenet_v2

        weights = MobileNet_V2_Weights.DEFAULT
        self._torch = torch
        self.device = torch.device(device)
        self.categories: Sequence[str] = weights.meta["categories"]
        self.network = mobilenet_v2(weights=weights).to(self.device).eval()
        self._mean = torch.tensor(IMAGENET_MEAN, device=self.device).view(1, 3, 1, 1)
        self._std = torch.tensor(IMAGENET_STD, device=self.device).view(1, 3, 1, 1)
        logger.info("MobileNetV2 loaded on %s", self.device)

    def predict(self, buffer: DecodedPixelBuffer) -> ClassificationResult:
        torch = self._torch
        rgb = buffer.pixels[..., :3]
        channel_means = tuple(float(v) for v in rgb.reshape(-1, 3).mean(axis=0))

        with torch.inference_mode():
            tensor = torch.from_numpy(np.ascontiguousarray(rgb)).to(self.device)
            batch = tensor.permute(2, 0, 1).unsqueeze(0).float().div(255.0)
            if batch.shape[-2:] != (INPUT_SIZE, INPUT_SIZE):
                batch = torch.nn.functional.interpolate(
                    batch, size=(INPUT_SIZE, INPUT_SIZE), mode="bilinear", align_corners=False
                )
            batch = (batch - self._mean) / self._std
            probabilities = torch.softmax(self.network(batch), dim=1)[0]
            top_probability, top_index = probabilities.max(dim=0)
            probability = float(top_probability)
            label = self.categories[int(top_index)]
            del tensor, batch, probabilities

        if not label:
            raise RuntimeError("Model did not return any predictions")
        disease = map_prediction(label, probability, channel_means)
        logger.debug("MobileNet top label %r (%.3f) -> %s", label, probability, disease)
        return ClassificationResult.from_probability(disease, probability)


def load_mobilenet_model() -> MobileNetDiseaseModel:
    return MobileNetDiseaseModel()
