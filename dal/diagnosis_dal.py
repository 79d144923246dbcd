"""Async Data Access Layer for the diagnoses and diagnosis_details tables.

Provides DiagnosisDAL with async CRUD operations compatible with
`utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import List, Optional, Sequence

from models.diagnosis_record import DiagnosisRecord, FeedbackAnnotation, ProductRecommendation, TreatmentOption
from utils.database_init import AsyncDatabaseInitializer


class DiagnosisDAL:
    """Data access layer for diagnosis records.

    A record is split across two rows: the summary in `diagnoses` and the
    list-valued content plus feedback in `diagnosis_details`.
    """

    _SELECT = """
        SELECT d.id, d.created_at, d.image_path, d.is_healthy, d.disease_name,
               d.confidence_score, d.plant_type, d.description,
               dd.symptoms, dd.treatment_options, dd.product_recommendations,
               dd.feedback_helpful, dd.feedback_comments
        FROM diagnoses d
        LEFT JOIN diagnosis_details dd ON dd.diagnosis_id = d.id
    """

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_diagnosis(self, record: DiagnosisRecord) -> None:
        """Insert the summary and detail rows for `record` in one transaction."""
        async with self._db.connection() as conn:
            await conn.execute(
                "INSERT INTO diagnoses (id, created_at, image_path, is_healthy, disease_name, "
                "confidence_score, plant_type, description) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.created_at.isoformat(),
                    record.image_url,
                    int(record.is_healthy),
                    record.disease_name,
                    record.confidence_score,
                    record.plant_type,
                    record.description,
                ),
            )
            await conn.execute(
                "INSERT INTO diagnosis_details (diagnosis_id, symptoms, treatment_options, "
                "product_recommendations, feedback_helpful, feedback_comments) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    json.dumps(list(record.symptoms)),
                    json.dumps([t.to_dict() for t in record.treatment_options]),
                    json.dumps([p.to_dict() for p in record.product_recommendations]),
                    None if record.feedback is None else int(record.feedback.helpful),
                    None if record.feedback is None else record.feedback.comment,
                ),
            )
            await conn.commit()

    async def get_diagnosis(self, diagnosis_id: str) -> Optional[DiagnosisRecord]:
        """Return the DiagnosisRecord for `diagnosis_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(f"{self._SELECT} WHERE d.id = ?", (diagnosis_id,))
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_diagnoses(self, limit: int = 100, offset: int = 0) -> List[DiagnosisRecord]:
        """List diagnoses, most recent first.

        Args:
            limit: Maximum number of rows to return.
            offset: Rows to skip.
        """
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"{self._SELECT} ORDER BY d.created_at DESC, d.rowid DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def get_image_path(self, diagnosis_id: str) -> Optional[str]:
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT image_path FROM diagnoses WHERE id = ?", (diagnosis_id,))
            row = await cur.fetchone()
            return row[0] if row else None

    async def delete_diagnosis(self, diagnosis_id: str) -> bool:
        """Delete a diagnosis (details cascade). Returns True if a row was deleted."""
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM diagnoses WHERE id = ?", (diagnosis_id,))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    async def update_feedback(self, diagnosis_id: str, helpful: bool, comment: Optional[str]) -> bool:
        """Overwrite the feedback columns. Returns True if a row was changed."""
        async with self._db.connection() as conn:
            await conn.execute(
                "UPDATE diagnosis_details SET feedback_helpful = ?, feedback_comments = ? WHERE diagnosis_id = ?",
                (int(helpful), comment, diagnosis_id),
            )
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> DiagnosisRecord:
        """Convert a joined DB row into a DiagnosisRecord."""
        symptoms = json.loads(row[8]) if row[8] else []
        treatments = json.loads(row[9]) if row[9] else []
        products = json.loads(row[10]) if row[10] else []
        is_healthy = bool(row[3])
        feedback = None
        if row[11] is not None:
            feedback = FeedbackAnnotation(diagnosis_id=row[0], helpful=bool(row[11]), comment=row[12])
        return DiagnosisRecord(
            id=row[0],
            created_at=datetime.fromisoformat(row[1]),
            image_url=row[2],
            is_healthy=is_healthy,
            disease_name=None if is_healthy else row[4],
            confidence_score=int(row[5]),
            plant_type=row[6],
            description=row[7],
            symptoms=() if is_healthy else tuple(symptoms),
            treatment_options=tuple(TreatmentOption.from_dict(t) for t in treatments),
            product_recommendations=tuple(ProductRecommendation.from_dict(p) for p in products),
            feedback=feedback,
        )
