from fastapi import APIRouter, HTTPException, Request

from controllers.image_controller import get_image

router = APIRouter()


@router.get("/images/{filename}")
async def get_image_route(request: Request, filename: str):
	"""Return the stored image bytes for a diagnosis."""
	try:
		return await get_image(request, filename)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
