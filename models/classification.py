"""Classification value objects produced by the inference tiers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional


class ClassifierTier(IntEnum):
    """Fallback tiers in the order the orchestrator attempts them."""

    WORKER = 1
    MAIN_THREAD = 2
    CLASSICAL = 3
    STUB = 4

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class ClassificationResult:
    """Disease identifier plus an integer confidence between 0 and 100."""

    disease_identifier: str
    confidence_score: int

    def __post_init__(self) -> None:
        if not self.disease_identifier:
            raise ValueError("disease_identifier must be a non-empty string")
        if isinstance(self.confidence_score, bool) or not isinstance(self.confidence_score, int):
            raise ValueError(f"confidence_score must be an int, got {self.confidence_score!r}")
        if not 0 <= self.confidence_score <= 100:
            raise ValueError(f"confidence_score out of range: {self.confidence_score}")

    @classmethod
    def from_probability(cls, disease_identifier: str, probability: float) -> "ClassificationResult":
        score = int(round(float(probability) * 100))
        return cls(disease_identifier, max(0, min(100, score)))

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ClassificationResult":
        """Parse the worker's `{"diseaseId", "confidence"}` result shape."""
        return cls(str(payload["diseaseId"]), int(payload["confidence"]))

    def to_dict(self) -> Dict[str, Any]:
        return {"diseaseId": self.disease_identifier, "confidence": self.confidence_score}


@dataclass(frozen=True)
class TieredClassification:
    """A classification tagged with the tier that produced it.

    Only `result` travels past the orchestrator; `tier` is for logs.
    """

    result: ClassificationResult
    tier: ClassifierTier

    @property
    def disease_identifier(self) -> str:
        return self.result.disease_identifier

    @property
    def confidence_score(self) -> int:
        return self.result.confidence_score


@dataclass(frozen=True)
class ChannelRequest:
    """Outbound message envelope for the background worker.

    `id` is the correlation id; ids come from a counter owned by the
    channel and are never reused within a process lifetime.
    """

    id: int
    type: str
    payload: Optional[Dict[str, Any]] = None
    issued_at: float = field(default_factory=time.monotonic)

    def to_message(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type, "data": self.payload}
