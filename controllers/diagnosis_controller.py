from typing import Any, Dict, List, Optional
import logging

from fastapi import HTTPException, Request, UploadFile

from services.analysis_pipeline import describe_failure
from services.errors import ImageValidationError, InferenceExhaustedError
from utils.media_validation import read_image_upload

logger = logging.getLogger(__name__)


async def analyze_upload(request: Request, file: UploadFile) -> Dict[str, Any]:
    """Validate, classify and store an uploaded plant photo.

    Args:
        request: FastAPI Request (used to access app.state.pipeline).
        file: Uploaded image file (JPEG, PNG or WebP).

    Returns:
        The diagnosis as a camelCase dict.

    Raises:
        HTTPException(400) for images that fail validation.
        HTTPException(503) when no classifier tier produced a result.
    """
    pipeline = request.app.state.pipeline
    raw = await read_image_upload(file, max_bytes=pipeline.validator.max_bytes)
    try:
        record = await pipeline.analyze(raw)
    except ImageValidationError as exc:
        raise HTTPException(status_code=400, detail=describe_failure(exc))
    except InferenceExhaustedError as exc:
        logger.error("Analysis of %s failed: %s", raw.filename, exc)
        raise HTTPException(status_code=503, detail=describe_failure(exc))
    return record.to_dict()


async def list_diagnoses(request: Request, limit: int = 100) -> List[Dict[str, Any]]:
    store = request.app.state.result_store
    records = await store.list_recent(limit=limit)
    return [r.to_dict() for r in records]


async def get_diagnosis(request: Request, diagnosis_id: str) -> Dict[str, Any]:
    store = request.app.state.result_store
    record = await store.get_by_id(diagnosis_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Diagnosis not found")
    return record.to_dict()


async def delete_diagnosis(request: Request, diagnosis_id: str) -> Dict[str, Any]:
    """Delete a stored diagnosis and its image.

    An offline store is not an error for the caller; it reports `deleted: false`.
    """
    store = request.app.state.result_store
    deleted = await store.delete(diagnosis_id)
    if deleted is False:
        raise HTTPException(status_code=404, detail="Diagnosis not found")
    return {"ok": True, "deleted": bool(deleted)}


async def submit_feedback(request: Request, diagnosis_id: str, helpful: bool, comment: Optional[str] = None) -> Dict[str, Any]:
    store = request.app.state.result_store
    cleaned = comment.strip() if comment else None
    await store.attach_feedback(diagnosis_id, helpful, cleaned or None)
    return {"ok": True}
