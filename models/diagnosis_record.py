from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class TreatmentOption:
    name: str
    description: str
    effectiveness_percent: int
    application_method: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "effectiveness": self.effectiveness_percent,
            "applicationMethod": self.application_method,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TreatmentOption":
        return cls(
            name=data["name"],
            description=data["description"],
            effectiveness_percent=int(data["effectiveness"]),
            application_method=data["applicationMethod"],
        )


@dataclass(frozen=True)
class ProductRecommendation:
    name: str
    type: str
    description: str
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "type": self.type, "description": self.description}
        if self.image_url:
            data["imageUrl"] = self.image_url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductRecommendation":
        return cls(
            name=data["name"],
            type=data["type"],
            description=data["description"],
            image_url=data.get("imageUrl"),
        )


@dataclass(frozen=True)
class FeedbackAnnotation:
    """User verdict on a diagnosis. At most one per diagnosis; the last write wins."""

    diagnosis_id: str
    helpful: bool
    comment: Optional[str] = None


@dataclass(frozen=True)
class DiagnosisRecord:
    """A completed analysis enriched with descriptive content.

    Attributes:
        id: Globally unique identifier (uuid4 hex string).
        is_healthy: True when the classifier returned the "healthy" identifier.
        disease_name: Display name of the disease; None for healthy plants.
        confidence_score: Integer confidence 0-100.
        description: Free-text description of the condition.
        symptoms: Ordered symptom list; always empty for healthy plants.
        treatment_options: Ordered treatments.
        product_recommendations: Ordered product suggestions.
        plant_type: Plant the content refers to.
        image_url: Public blob URL or transient preview URL.
        created_at: Timezone-aware creation time.
        feedback: Optional user feedback attached after the fact.
    """

    id: str
    is_healthy: bool
    disease_name: Optional[str]
    confidence_score: int
    description: str
    symptoms: Tuple[str, ...]
    treatment_options: Tuple[TreatmentOption, ...]
    product_recommendations: Tuple[ProductRecommendation, ...]
    plant_type: str
    image_url: str
    created_at: datetime
    feedback: Optional[FeedbackAnnotation] = None

    def __post_init__(self) -> None:
        if self.is_healthy and (self.disease_name or self.symptoms):
            raise ValueError("A healthy diagnosis cannot carry a disease name or symptoms")

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON shape served to clients (camelCase keys)."""
        data: Dict[str, Any] = {
            "id": self.id,
            "isHealthy": self.is_healthy,
            "confidenceScore": self.confidence_score,
            "description": self.description,
            "symptoms": list(self.symptoms),
            "treatmentOptions": [t.to_dict() for t in self.treatment_options],
            "productRecommendations": [p.to_dict() for p in self.product_recommendations],
            "plantType": self.plant_type,
            "imageUrl": self.image_url,
            "timestamp": self.created_at.isoformat(),
        }
        if self.disease_name is not None:
            data["diseaseName"] = self.disease_name
        if self.feedback is not None:
            data["feedback"] = {"helpful": self.feedback.helpful, "comment": self.feedback.comment}
        return data
