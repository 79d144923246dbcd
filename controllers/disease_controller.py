from typing import Any, Dict

from fastapi import HTTPException

from services.disease_catalog import DISEASE_CLASSES, get_all_disease_info, get_disease_info, is_known_disease


async def list_diseases() -> Dict[str, Any]:
    """Return the class list and the content entry for every known class."""
    return {"classes": [dict(entry) for entry in DISEASE_CLASSES], "diseases": get_all_disease_info()}


async def get_disease(disease_id: str) -> Dict[str, Any]:
    if not is_known_disease(disease_id):
        raise HTTPException(status_code=404, detail="Disease not found")
    info = get_disease_info(disease_id)
    info["id"] = disease_id
    return info
