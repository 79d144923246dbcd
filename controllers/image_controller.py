from fastapi import HTTPException, Request
from fastapi.responses import FileResponse


async def get_image(request: Request, filename: str) -> FileResponse:
    """Serve a stored image blob.

    Raises:
        HTTPException(404) if the filename is unsafe or no such blob exists.
    """
    image_store = getattr(request.app.state, "image_store", None)
    if image_store is None:
        raise HTTPException(status_code=404, detail="Image not found")
    path = image_store.path_for(filename)
    if path is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(path)
