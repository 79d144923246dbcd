"""Resolve "module:callable" model factories."""

from __future__ import annotations

import importlib
from typing import Protocol

from models.classification import ClassificationResult
from models.pixel_buffer import DecodedPixelBuffer


class DiseaseModel(Protocol):
    """Anything that maps a preprocessed RGBA buffer to a classification."""

    def predict(self, buffer: DecodedPixelBuffer) -> ClassificationResult: ...


def load_model(factory_path: str) -> DiseaseModel:
    """Import and call the factory named by `factory_path` (e.g. "pkg.mod:build").

    Raises:
        ValueError: If the path is malformed.
        TypeError: If the factory does not return an object with `predict`.
    """
    module_name, _, attr = factory_path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Model factory must look like 'module:callable', got {factory_path!r}")
    factory = getattr(importlib.import_module(module_name), attr)
    model = factory()
    if not callable(getattr(model, "predict", None)):
        raise TypeError(f"{factory_path} did not return a model with a predict() method")
    return model
