"""Helpers for turning uploaded files into RawImage payloads."""

import mimetypes
from typing import Optional

from fastapi import HTTPException, UploadFile

from models.pixel_buffer import RawImage


def resolve_mime_type(upload: UploadFile) -> str:
    """Return the upload's MIME type without parameters.

    Falls back to a guess from the filename extension when the client sent
    no content type.
    """
    if upload.content_type:
        return upload.content_type.lower().split(";", 1)[0].strip()
    guessed, _ = mimetypes.guess_type(upload.filename or "")
    return guessed or "application/octet-stream"


async def read_image_upload(upload: UploadFile, max_bytes: Optional[int] = None) -> RawImage:
    """Read the uploaded image into memory. Content checks are left to ImageValidator.

    With `max_bytes`, at most one byte past the limit is read, which is
    enough for the size check to reject the upload.
    """
    if upload is None or not upload.filename:
        raise HTTPException(status_code=400, detail="An image file is required.")
    data = await upload.read(max_bytes + 1) if max_bytes is not None else await upload.read()
    return RawImage(data=data, mime_type=resolve_mime_type(upload), filename=upload.filename)
