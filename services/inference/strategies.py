"""Classifier strategies, one per fallback tier.

Each strategy is tagged with its `ClassifierTier` so results can always be
traced back to the code path that produced them. `NullClassifier` is the
last-resort stub and never touches a model.
"""

from __future__ import annotations

import logging
import random
from typing import List, Optional, Protocol

from models.classification import ClassificationResult, ClassifierTier
from models.pixel_buffer import DecodedPixelBuffer
from services.errors import ChannelUnavailableError, InferenceFailure
from services.inference.channel import BackgroundChannel
from services.inference.classical import ColorFeatureModel
from services.inference.model_loader import DiseaseModel, load_model
from services.preprocessing import SEGMENT_THRESHOLD, segment_background

logger = logging.getLogger(__name__)


class TierResources:
    """Buffers allocated during one tier attempt, all released on exit."""

    def __init__(self) -> None:
        self._buffers: List[DecodedPixelBuffer] = []

    def track(self, buffer: DecodedPixelBuffer) -> DecodedPixelBuffer:
        self._buffers.append(buffer)
        return buffer

    def release_all(self) -> None:
        for buffer in self._buffers:
            buffer.release()
        self._buffers.clear()

    def __enter__(self) -> "TierResources":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release_all()


class ClassifierStrategy(Protocol):
    tier: ClassifierTier

    async def classify(self, buffer: DecodedPixelBuffer, resources: TierResources) -> ClassificationResult: ...


class WorkerClassifier:
    """Tier 1: run the model in the background worker."""

    tier = ClassifierTier.WORKER

    def __init__(self, channel: BackgroundChannel) -> None:
        self.channel = channel

    async def classify(self, buffer: DecodedPixelBuffer, resources: TierResources) -> ClassificationResult:
        if not await self.channel.init():
            raise ChannelUnavailableError(f"Worker unavailable: {self.channel.last_error}")
        segmented = resources.track(segment_background(buffer, SEGMENT_THRESHOLD))
        result = await self.channel.request("predict", segmented.to_message())
        try:
            return ClassificationResult.from_dict(result)
        except (KeyError, TypeError, ValueError) as exc:
            raise InferenceFailure(f"Malformed worker result {result!r}") from exc


class MainThreadClassifier:
    """Tier 2: run the same model synchronously on the calling thread.

    The model is loaded on first use; a failed load is remembered so later
    analyses fall through immediately instead of retrying the download.
    """

    tier = ClassifierTier.MAIN_THREAD

    def __init__(self, model_factory: str, model: Optional[DiseaseModel] = None) -> None:
        self.model_factory = model_factory
        self._model = model
        self._load_error: Optional[str] = None

    def _ensure_model(self) -> DiseaseModel:
        if self._model is not None:
            return self._model
        if self._load_error is not None:
            raise InferenceFailure(f"Model initialization failed: {self._load_error}")
        try:
            self._model = load_model(self.model_factory)
        except Exception as exc:
            self._load_error = str(exc) or exc.__class__.__name__
            raise InferenceFailure(f"Model initialization failed: {self._load_error}") from exc
        return self._model

    async def classify(self, buffer: DecodedPixelBuffer, resources: TierResources) -> ClassificationResult:
        model = self._ensure_model()
        segmented = resources.track(segment_background(buffer, SEGMENT_THRESHOLD))
        return model.predict(segmented)


class ClassicalClassifier:
    """Tier 3: colour-feature rules, no model weights."""

    tier = ClassifierTier.CLASSICAL

    def __init__(self, model: Optional[DiseaseModel] = None) -> None:
        self.model = model or ColorFeatureModel()

    async def classify(self, buffer: DecodedPixelBuffer, resources: TierResources) -> ClassificationResult:
        return self.model.predict(buffer)


class NullClassifier:
    """Tier 4: randomized stub so the user never gets a dead end."""

    tier = ClassifierTier.STUB
    CANDIDATES = ("healthy", "late_blight", "early_blight")
    CONFIDENCE_RANGE = (70, 90)

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    async def classify(self, buffer: DecodedPixelBuffer, resources: TierResources) -> ClassificationResult:
        low, high = self.CONFIDENCE_RANGE
        return ClassificationResult(self.rng.choice(self.CANDIDATES), self.rng.randint(low, high))
