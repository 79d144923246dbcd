"""Ordered fallback over classifier tiers."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from models.classification import ClassificationResult, ClassifierTier, TieredClassification
from models.pixel_buffer import DecodedPixelBuffer
from services.errors import ChannelTimeoutError, ChannelUnavailableError, InferenceExhaustedError
from services.inference.channel import BackgroundChannel
from services.inference.strategies import (
    ClassicalClassifier,
    ClassifierStrategy,
    MainThreadClassifier,
    NullClassifier,
    TierResources,
    WorkerClassifier,
)
from utils.settings import Settings

logger = logging.getLogger(__name__)


class InferenceOrchestrator:
    """Try each strategy in order until one produces a result.

    Tiers run strictly one after another. Each attempt gets a private copy
    of the input buffer and a `TierResources` scope that is released before
    the next tier starts, whether the attempt succeeded or not.
    """

    def __init__(self, strategies: Sequence[ClassifierStrategy]) -> None:
        if not strategies:
            raise ValueError("At least one classifier strategy is required")
        self.strategies = list(strategies)

    async def classify(self, buffer: DecodedPixelBuffer) -> TieredClassification:
        failures: List[str] = []
        for strategy in self.strategies:
            tier = strategy.tier
            try:
                with TierResources() as resources:
                    working = resources.track(buffer.copy())
                    result = await strategy.classify(working, resources)
                if not isinstance(result, ClassificationResult):
                    raise TypeError(f"{tier.label} tier returned {type(result).__name__}")
            except ChannelTimeoutError as exc:
                logger.warning("Inference tier %s timed out: %s", tier.label, exc)
                failures.append(f"{tier.label}: timed out")
                continue
            except ChannelUnavailableError as exc:
                logger.warning("Inference tier %s unavailable: %s", tier.label, exc)
                failures.append(f"{tier.label}: unavailable")
                continue
            except Exception as exc:
                logger.warning("Inference tier %s failed: %s", tier.label, exc)
                failures.append(f"{tier.label}: {exc}")
                continue

            if tier is ClassifierTier.STUB:
                logger.warning(
                    "No classifier produced a result; returning stub output %s (%s%%) tier=%s",
                    result.disease_identifier,
                    result.confidence_score,
                    tier.label,
                )
            else:
                logger.info(
                    "Image analysis completed: %s (%s%%) tier=%s",
                    result.disease_identifier,
                    result.confidence_score,
                    tier.label,
                )
            return TieredClassification(result=result, tier=tier)

        raise InferenceExhaustedError("All classifier tiers failed: " + "; ".join(failures))


def build_orchestrator(settings: Settings, channel: Optional[BackgroundChannel]) -> InferenceOrchestrator:
    """Assemble the default four-tier chain (the worker tier only when a channel exists)."""
    strategies: List[ClassifierStrategy] = []
    if channel is not None:
        strategies.append(WorkerClassifier(channel))
    strategies.extend(
        [
            MainThreadClassifier(settings.model_factory),
            ClassicalClassifier(),
            NullClassifier(),
        ]
    )
    return InferenceOrchestrator(strategies)
