"""Worksheet creation for generated lessons."""
import json
import logging
import time
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from config import get_settings
from features.ai_lessons.models.domain import StudentMaterial
from features.ai_lessons.repositories.worksheet_repository import WorksheetRepository

logger = logging.getLogger(__name__)


def build_worksheet_code(lesson_id: str, student_id: str, timestamp_ms: Optional[int] = None) -> str:
    """WS-{first 8 of lesson id}-{first 8 of student id}-{epoch ms}."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"WS-{lesson_id[:8]}-{student_id[:8]}-{timestamp_ms}"


class WorksheetService:
    """Stores one printable worksheet per student material, addressed by a QR URL."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = WorksheetRepository(db)
        self.qr_base_url = get_settings().worksheet_qr_base_url.rstrip("/")
        self._last_timestamp_ms = 0

    def create_worksheet(
        self,
        lesson_id: str,
        student_id: str,
        subject: str,
        material: StudentMaterial,
    ) -> Tuple[str, str]:
        """
        Persist a worksheet for a student's material.

        Args:
            lesson_id: Owning lesson id
            student_id: Student the worksheet is for
            subject: Stored as the worksheet type
            material: The student's generated material

        Returns:
            Tuple of (worksheet_id, qr_url)
        """
        worksheet = material.worksheet_content
        content = {
            "title": worksheet.title,
            "instructions": worksheet.instructions,
            "questions": worksheet.problems,
        }
        answer_key = {
            "questions": [
                {
                    "id": question.get("id"),
                    "answer": question.get("answer"),
                    "points": question.get("points") or 1,
                }
                for question in worksheet.problems
                if isinstance(question, dict)
            ]
        }

        # Codes stay unique when students share an id prefix within one millisecond
        timestamp_ms = max(int(time.time() * 1000), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms
        code = build_worksheet_code(lesson_id, student_id, timestamp_ms)
        qr_url = f"{self.qr_base_url}/{code}"
        row = self.repo.create(
            lesson_id=lesson_id,
            student_id=student_id,
            worksheet_type=subject,
            worksheet_code=code,
            qr_code_url=qr_url,
            content=content,
            answer_key=answer_key,
        )

        logger.info(json.dumps({
            "step": "WORKSHEET_CREATED",
            "worksheet_id": row.id,
            "student_id": student_id,
            "code": code,
        }))
        return row.id, qr_url
