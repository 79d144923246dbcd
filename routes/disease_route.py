from fastapi import APIRouter, HTTPException

from controllers.disease_controller import get_disease, list_diseases

router = APIRouter(prefix="/diseases")


@router.get("")
async def list_diseases_route():
	"""Return every disease class with its descriptive content."""
	return await list_diseases()


@router.get("/{disease_id}")
async def get_disease_route(disease_id: str):
	try:
		return await get_disease(disease_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
