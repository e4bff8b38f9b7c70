"""Repository for the lesson adjustment queue."""
import uuid
from datetime import datetime
from typing import Iterable, List, Optional
from sqlalchemy.orm import Session

from features.ai_lessons.models.database import LessonAdjustment
from features.ai_lessons.models.domain import QueuedAdjustment
from shared.utils.json_fields import dump_json, load_json


class LessonAdjustmentRepository:
    """Persistence for lesson_adjustment_queue rows, returning QueuedAdjustment models."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        student_id: str,
        subject: str,
        adjustment_type: str,
        details: dict,
        priority: int,
        worksheet_submission_id: Optional[str] = None,
    ) -> QueuedAdjustment:
        row = LessonAdjustment(
            id=str(uuid.uuid4()),
            student_id=student_id,
            worksheet_submission_id=worksheet_submission_id,
            subject=subject,
            adjustment_type=adjustment_type,
            adjustment_details_json=dump_json(details or {}),
            priority=priority,
            processed=False,
            created_at=datetime.utcnow(),
        )
        self.db.add(row)
        self.db.flush()
        return self.to_domain(row)

    def get_pending(
        self,
        student_id: Optional[str] = None,
        subject: Optional[str] = None,
        limit: int = 10,
        student_ids: Optional[Iterable[str]] = None,
    ) -> List[QueuedAdjustment]:
        """
        Unprocessed adjustments, most urgent first.

        Args:
            student_id: Restrict to one student
            subject: Restrict to one subject
            limit: Max rows returned
            student_ids: Restrict to a set of students (e.g. a provider's caseload)
        """
        query = self.db.query(LessonAdjustment).filter(LessonAdjustment.processed.is_(False))
        if student_id:
            query = query.filter(LessonAdjustment.student_id == student_id)
        if subject:
            query = query.filter(LessonAdjustment.subject == subject)
        if student_ids is not None:
            query = query.filter(LessonAdjustment.student_id.in_(list(student_ids)))
        rows = (
            query.order_by(LessonAdjustment.priority.desc(), LessonAdjustment.created_at.desc())
            .limit(limit)
            .all()
        )
        return [self.to_domain(row) for row in rows]

    def get_all_for_student(self, student_id: str) -> List[QueuedAdjustment]:
        """Every adjustment for a student, newest first."""
        rows = (
            self.db.query(LessonAdjustment)
            .filter(LessonAdjustment.student_id == student_id)
            .order_by(LessonAdjustment.created_at.desc())
            .all()
        )
        return [self.to_domain(row) for row in rows]

    def mark_processed(self, adjustment_ids: List[str]) -> int:
        """Flag adjustments as processed. Returns the number of rows updated."""
        if not adjustment_ids:
            return 0
        updated = (
            self.db.query(LessonAdjustment)
            .filter(LessonAdjustment.id.in_(adjustment_ids))
            .update(
                {LessonAdjustment.processed: True, LessonAdjustment.processed_at: datetime.utcnow()},
                synchronize_session=False,
            )
        )
        self.db.flush()
        return updated

    def filter_ids_for_students(self, adjustment_ids: List[str], student_ids: List[str]) -> List[str]:
        """Return the subset of adjustment ids owned by the given students."""
        if not adjustment_ids or not student_ids:
            return []
        rows = (
            self.db.query(LessonAdjustment.id)
            .filter(LessonAdjustment.id.in_(adjustment_ids))
            .filter(LessonAdjustment.student_id.in_(student_ids))
            .all()
        )
        return [row.id for row in rows]

    def delete_processed_before(self, cutoff: datetime, student_ids: Optional[List[str]] = None) -> int:
        """Delete processed rows whose processed_at is older than `cutoff`. Returns rows deleted."""
        query = self.db.query(LessonAdjustment).filter(
            LessonAdjustment.processed.is_(True),
            LessonAdjustment.processed_at < cutoff,
        )
        if student_ids is not None:
            query = query.filter(LessonAdjustment.student_id.in_(student_ids))
        deleted = query.delete(synchronize_session=False)
        self.db.flush()
        return deleted

    @staticmethod
    def to_domain(row: LessonAdjustment) -> QueuedAdjustment:
        return QueuedAdjustment(
            id=row.id,
            student_id=row.student_id,
            worksheet_submission_id=row.worksheet_submission_id,
            subject=row.subject,
            adjustment_type=row.adjustment_type,
            adjustment_details=load_json(row.adjustment_details_json, {}),
            priority=row.priority if row.priority is not None else 5,
            processed=bool(row.processed),
            processed_at=row.processed_at,
            created_at=row.created_at or datetime.utcnow(),
        )
