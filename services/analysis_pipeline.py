"""End-to-end analysis of one uploaded plant photo.

validate -> decode -> preprocess -> classify (tiered) -> image URL ->
assemble -> save. Only validation and tier exhaustion reach the caller;
persistence problems are logged by the result store and the diagnosis is
still returned.
"""

from __future__ import annotations

import asyncio
import logging

from models.classification import TieredClassification
from models.diagnosis_record import DiagnosisRecord
from models.pixel_buffer import DecodedPixelBuffer, RawImage
from services.diagnosis_assembler import assemble
from services.errors import ChannelTimeoutError, ImageValidationError, InferenceExhaustedError
from services.image_validator import ImageValidator
from services.inference.orchestrator import InferenceOrchestrator
from services.preprocessing import ANALYSIS_OPTIONS, PreprocessOptions, preprocess
from services.result_store import ResultStore
from services.thumbnail_generator import ThumbnailGenerator

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = (
    "The analysis timed out. Please try again with a smaller image or check your internet connection."
)
EXHAUSTED_MESSAGE = "Failed to analyze plant image. Please try again with a different image."
GENERIC_FAILURE_MESSAGE = "Failed to analyze plant image. Please try again."


def describe_failure(exc: BaseException) -> str:
    """Return the user-facing message for an analysis failure."""
    if isinstance(exc, ImageValidationError):
        return str(exc)
    if isinstance(exc, ChannelTimeoutError):
        return TIMEOUT_MESSAGE
    if isinstance(exc, InferenceExhaustedError):
        return EXHAUSTED_MESSAGE
    return GENERIC_FAILURE_MESSAGE


class DiagnosisPipeline:
    """Turn a raw upload into a DiagnosisRecord.

    Args:
        validator: Rejects unusable images before any model runs.
        orchestrator: Tiered classifier fallback.
        store: Result store gateway (may be offline).
        previews: Builds the data URL used when the image is not retained.
        options: Preprocessing recipe applied before classification.
    """

    def __init__(
        self,
        validator: ImageValidator,
        orchestrator: InferenceOrchestrator,
        store: ResultStore,
        previews: ThumbnailGenerator | None = None,
        options: PreprocessOptions = ANALYSIS_OPTIONS,
    ) -> None:
        self.validator = validator
        self.orchestrator = orchestrator
        self.store = store
        self.previews = previews or ThumbnailGenerator()
        self.options = options

    async def analyze(self, raw: RawImage) -> DiagnosisRecord:
        """Analyze `raw` and return the diagnosis.

        Raises:
            ImageValidationError: The image failed validation.
            InferenceExhaustedError: Every classifier tier failed.
        """
        checked = self.validator.validate_metadata(raw)
        if not checked.valid:
            raise ImageValidationError(checked.error)
        decoded = await asyncio.to_thread(self.validator.decode_valid, raw)
        logger.info("Analyzing %s (%s, %d bytes)", raw.filename, raw.mime_type, raw.size)

        classification = await self._classify(decoded)
        result = classification.result

        image_url = await self._image_url(raw, result.confidence_score)
        record = assemble(result, image_url)
        await self.store.save(record)
        return record

    async def _classify(self, decoded: DecodedPixelBuffer) -> TieredClassification:
        try:
            prepared = await asyncio.to_thread(preprocess, decoded, self.options)
        finally:
            decoded.release()
        try:
            return await self.orchestrator.classify(prepared)
        finally:
            prepared.release()

    async def _image_url(self, raw: RawImage, confidence_score: int) -> str:
        if self.store.should_retain(confidence_score):
            url = await self.store.store_image(raw)
            if url:
                return url
        return await asyncio.to_thread(self.previews.create_preview_url, raw.data)
