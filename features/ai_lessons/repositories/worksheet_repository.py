"""Repository for worksheets and their graded submissions."""
import uuid
from typing import Any, List, Optional
from sqlalchemy.orm import Session

from features.ai_lessons.models.database import Worksheet, WorksheetSubmission
from shared.utils.json_fields import dump_json


class WorksheetRepository:
    """Persistence for worksheets and worksheet_submissions."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        lesson_id: Optional[str],
        student_id: str,
        worksheet_type: str,
        worksheet_code: str,
        qr_code_url: str,
        content: dict,
        answer_key: Any = None,
    ) -> Worksheet:
        row = Worksheet(
            id=str(uuid.uuid4()),
            lesson_id=lesson_id,
            student_id=student_id,
            worksheet_type=worksheet_type,
            worksheet_code=worksheet_code,
            qr_code_url=qr_code_url,
            content_json=dump_json(content),
            answer_key_json=dump_json(answer_key),
        )
        self.db.add(row)
        self.db.flush()
        return row

    def get_by_id(self, worksheet_id: str) -> Optional[Worksheet]:
        return self.db.query(Worksheet).filter(Worksheet.id == worksheet_id).first()

    def create_submission(
        self,
        worksheet_id: str,
        accuracy_percentage: float,
        student_responses: Optional[list] = None,
        skills_assessed: Any = None,
        ai_analysis: Optional[str] = None,
    ) -> WorksheetSubmission:
        row = WorksheetSubmission(
            id=str(uuid.uuid4()),
            worksheet_id=worksheet_id,
            accuracy_percentage=accuracy_percentage,
            student_responses_json=dump_json(student_responses),
            skills_assessed_json=dump_json(skills_assessed),
            ai_analysis=ai_analysis,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def get_recent_submissions(self, student_id: str, limit: int) -> List[tuple]:
        """
        Return a student's most recent submissions with their worksheet type.

        Returns:
            List of (WorksheetSubmission, worksheet_type) tuples, newest first
        """
        return (
            self.db.query(WorksheetSubmission, Worksheet.worksheet_type)
            .join(Worksheet, WorksheetSubmission.worksheet_id == Worksheet.id)
            .filter(Worksheet.student_id == student_id)
            .order_by(WorksheetSubmission.created_at.desc())
            .limit(limit)
            .all()
        )
