"""Combine a classification with catalog content into a DiagnosisRecord."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from models.classification import ClassificationResult
from models.diagnosis_record import DiagnosisRecord, ProductRecommendation, TreatmentOption
from services.disease_catalog import get_disease_info

HEALTHY_IDENTIFIER = "healthy"


def assemble(
    classification: ClassificationResult,
    image_url: str,
    *,
    lookup: Callable[[str], Dict[str, Any]] = get_disease_info,
    now: Optional[datetime] = None,
) -> DiagnosisRecord:
    """Build a new DiagnosisRecord with a fresh id and timestamp.

    Healthy results never carry a disease name or symptoms, whatever the
    content lookup returns.
    """
    info = lookup(classification.disease_identifier)
    is_healthy = classification.disease_identifier == HEALTHY_IDENTIFIER

    return DiagnosisRecord(
        id=uuid.uuid4().hex,
        is_healthy=is_healthy,
        disease_name=None if is_healthy else info["name"],
        confidence_score=classification.confidence_score,
        description=info["description"],
        symptoms=() if is_healthy else tuple(info.get("symptoms") or ()),
        treatment_options=tuple(TreatmentOption.from_dict(t) for t in info.get("treatmentOptions") or ()),
        product_recommendations=tuple(
            ProductRecommendation.from_dict(p) for p in info.get("productRecommendations") or ()
        ),
        plant_type=info.get("plantType") or "Unknown",
        image_url=image_url,
        created_at=now or datetime.now(timezone.utc),
    )
