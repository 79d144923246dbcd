"""FastAPI routes for plant diagnoses and their feedback."""

from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers.diagnosis_controller import (
	analyze_upload,
	delete_diagnosis,
	get_diagnosis,
	list_diagnoses,
	submit_feedback,
)

router = APIRouter(prefix="/diagnoses")


class FeedbackPayload(BaseModel):
	helpful: bool
	comment: Optional[str] = None


@router.post("")
async def analyze_route(request: Request, file: UploadFile = File(...)):
	try:
		return await analyze_upload(request, file)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("")
async def list_route(request: Request, limit: int = 100):
	try:
		return await list_diagnoses(request, limit)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{diagnosis_id}")
async def get_route(request: Request, diagnosis_id: str):
	try:
		return await get_diagnosis(request, diagnosis_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{diagnosis_id}")
async def delete_route(request: Request, diagnosis_id: str):
	try:
		return await delete_diagnosis(request, diagnosis_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{diagnosis_id}/feedback")
async def feedback_route(request: Request, diagnosis_id: str, payload: FeedbackPayload):
	try:
		return await submit_feedback(request, diagnosis_id, payload.helpful, payload.comment)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
