"""Gateway between the pipeline and diagnosis persistence.

The gateway checks store reachability before every operation. When the
store is not configured or unreachable it runs in offline mode: writes are
skipped, reads return empty results, and nothing is raised to callers.
Backend failures are wrapped in PersistenceError, logged, and swallowed.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

import aiosqlite

from dal.diagnosis_dal import DiagnosisDAL
from models.diagnosis_record import DiagnosisRecord
from models.pixel_buffer import RawImage
from services.errors import PersistenceError
from services.image_store import ImageStore
from utils.database_init import AsyncDatabaseInitializer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResultStore:
    """Persist, list and annotate diagnosis records.

    Args:
        db: Database initializer, or None when no store is configured.
        images: Blob bucket for originals, or None to never store blobs.
        min_confidence: Records scoring below this are not persisted.
    """

    def __init__(
        self,
        db: Optional[AsyncDatabaseInitializer],
        images: Optional[ImageStore] = None,
        min_confidence: int = 75,
    ) -> None:
        self._db = db
        self._dal = DiagnosisDAL(db) if db is not None else None
        self._images = images
        self.min_confidence = min_confidence

    async def is_available(self) -> bool:
        if self._db is None:
            return False
        return await self._db.is_reachable()

    def should_retain(self, confidence_score: int) -> bool:
        return confidence_score >= self.min_confidence

    async def store_image(self, raw: RawImage) -> Optional[str]:
        """Upload `raw` to the blob bucket; None if the store cannot take it."""
        if self._images is None or not await self.is_available():
            return None
        try:
            return await self._images.save(raw)
        except (OSError, ValueError) as exc:
            logger.error("%s", PersistenceError(f"Image upload failed: {exc}"))
            return None

    async def save(self, record: DiagnosisRecord) -> bool:
        """Persist `record`. Returns True only if it was written."""
        if not self.should_retain(record.confidence_score):
            logger.info(
                "Not saving diagnosis %s: confidence %d below %d",
                record.id,
                record.confidence_score,
                self.min_confidence,
            )
            return False
        if not await self.is_available():
            logger.warning("Result store unavailable; diagnosis %s not saved", record.id)
            return False
        return await self._guard("save", lambda: self._insert(record), False)

    async def list_recent(self, limit: int = 100) -> List[DiagnosisRecord]:
        """Return stored diagnoses newest first; empty when offline."""
        if not await self.is_available():
            return []
        return await self._guard("list", lambda: self._dal.list_diagnoses(limit=limit), [])

    async def get_by_id(self, diagnosis_id: str) -> Optional[DiagnosisRecord]:
        if not await self.is_available():
            return None
        return await self._guard("get", lambda: self._dal.get_diagnosis(diagnosis_id), None)

    async def delete(self, diagnosis_id: str) -> Optional[bool]:
        """Delete a record and its blob.

        Returns:
            True if a record was deleted, False if none matched, None when the
            store is offline or the delete failed.
        """
        if not await self.is_available():
            logger.warning("Result store unavailable; cannot delete %s", diagnosis_id)
            return None
        return await self._guard("delete", lambda: self._remove(diagnosis_id), None)

    async def attach_feedback(self, diagnosis_id: str, helpful: bool, comment: Optional[str] = None) -> bool:
        """Record user feedback; the last write wins."""
        if not await self.is_available():
            logger.warning("Result store unavailable; feedback for %s dropped", diagnosis_id)
            return False
        updated = await self._guard(
            "feedback", lambda: self._dal.update_feedback(diagnosis_id, helpful, comment), False
        )
        if not updated:
            logger.info("No stored diagnosis %s to annotate", diagnosis_id)
        return updated

    async def _insert(self, record: DiagnosisRecord) -> bool:
        await self._dal.create_diagnosis(record)
        logger.info("Saved diagnosis %s", record.id)
        return True

    async def _remove(self, diagnosis_id: str) -> bool:
        image_url = await self._dal.get_image_path(diagnosis_id)
        if image_url is None:
            return False
        deleted = await self._dal.delete_diagnosis(diagnosis_id)
        if deleted and self._images is not None:
            await self._images.delete_url(image_url)
        return deleted

    async def _guard(self, operation: str, call: Callable[[], Awaitable[T]], default: T) -> T:
        try:
            return await call()
        except (aiosqlite.Error, OSError, ValueError, KeyError) as exc:
            error = PersistenceError(f"Result store {operation} failed: {exc}")
            logger.error("%s", error)
            return default
