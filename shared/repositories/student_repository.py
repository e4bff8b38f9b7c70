"""Student data access layer."""
import logging
from typing import Optional
from sqlalchemy.orm import Session as DBSession

from shared.models.entities import Student, StudentDetails

logger = logging.getLogger(__name__)


class StudentRepository:
    """Read access to students and their detail records."""

    def __init__(self, db: DBSession):
        self.db = db

    def get_by_id(self, student_id: str) -> Optional[Student]:
        """Return a student, or None."""
        return self.db.query(Student).filter(Student.id == student_id).first()

    def get_details(self, student_id: str) -> Optional[StudentDetails]:
        """Return the student's detail record (IEP goals, reading, cognitive data), or None."""
        return self.db.query(StudentDetails).filter(
            StudentDetails.student_id == student_id
        ).first()

    def get_grade_levels(self, student_ids: list[str]) -> dict[str, Optional[str]]:
        """Batch lookup of grade levels keyed by student id."""
        if not student_ids:
            return {}
        rows = self.db.query(Student.id, Student.grade_level).filter(
            Student.id.in_(student_ids)
        ).all()
        return {row.id: row.grade_level for row in rows}

    def get_ids_for_provider(self, provider_id: str) -> list[str]:
        """Return ids of every student on a provider's caseload."""
        rows = self.db.query(Student.id).filter(
            Student.provider_id == provider_id
        ).order_by(Student.created_at).all()
        return [row.id for row in rows]
