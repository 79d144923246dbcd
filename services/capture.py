"""Live camera capture producing RawImage uploads.

The camera itself is an external collaborator described by the
`CameraSource` / `MediaStream` protocols. A session always stops every
track of the stream it opened, however it ends.
"""

from __future__ import annotations

import io
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol, Sequence

from PIL import Image

from models.pixel_buffer import RawImage
from services.errors import CaptureError

logger = logging.getLogger(__name__)

CAMERA_ACCESS_MESSAGE = "Could not access camera. Please check permissions or try uploading an image instead."
CAPTURE_JPEG_QUALITY = 95

_OPPOSITE_FACING = {"environment": "user", "user": "environment"}


class MediaTrack(Protocol):
	def stop(self) -> None: ...


class MediaStream(Protocol):
	@property
	def tracks(self) -> Sequence[MediaTrack]: ...

	async def grab_frame(self) -> Image.Image: ...


class CameraSource(Protocol):
	async def open(self, facing: str) -> MediaStream: ...


def stop_stream(stream: MediaStream) -> None:
	"""Stop every track of `stream`, continuing past tracks that fail to stop."""
	for track in stream.tracks:
		try:
			track.stop()
		except Exception as exc:
			logger.warning("Failed to stop camera track: %s", exc)


async def open_stream(source: CameraSource, facing: str = "environment") -> MediaStream:
	"""Open a stream, retrying once with the opposite facing mode.

	Raises:
		CaptureError: If neither facing mode can be opened.
	"""
	try:
		return await source.open(facing)
	except Exception as exc:
		fallback = _OPPOSITE_FACING.get(facing, "user")
		logger.warning("Camera %r unavailable (%s); retrying with %r", facing, exc, fallback)
		try:
			return await source.open(fallback)
		except Exception as retry_exc:
			logger.error("Camera access failed: %s", retry_exc)
			raise CaptureError(CAMERA_ACCESS_MESSAGE) from retry_exc


@asynccontextmanager
async def camera_session(source: CameraSource, facing: str = "environment") -> AsyncIterator[MediaStream]:
	"""Async context manager yielding an open stream; tracks stop on exit."""
	stream = await open_stream(source, facing)
	try:
		yield stream
	finally:
		stop_stream(stream)


async def capture_frame(stream: MediaStream, quality: int = CAPTURE_JPEG_QUALITY) -> RawImage:
	"""Grab the current frame as a JPEG upload named camera-capture-<ms>.jpg."""
	frame = await stream.grab_frame()
	out = io.BytesIO()
	frame.convert("RGB").save(out, format="JPEG", quality=quality)
	filename = f"camera-capture-{int(time.time() * 1000)}.jpg"
	return RawImage(data=out.getvalue(), mime_type="image/jpeg", filename=filename)


async def capture_photo(source: CameraSource, facing: str = "environment") -> RawImage:
	"""Open a session, capture a single frame, and close the session."""
	async with camera_session(source, facing) as stream:
		return await capture_frame(stream)
