"""Repository for per-subject student performance metrics."""
import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from features.ai_lessons.models.database import StudentPerformanceMetric
from shared.utils.constants import ACCURACY_TREND_CAP
from shared.utils.json_fields import dump_json, load_json


class PerformanceMetricRepository:
    """Persistence for student_performance_metrics."""

    def __init__(self, db: Session):
        self.db = db

    def get_for_student(
        self, student_id: str, subject: Optional[str] = None
    ) -> List[StudentPerformanceMetric]:
        """Return a student's metric rows, optionally for one subject."""
        query = self.db.query(StudentPerformanceMetric).filter(
            StudentPerformanceMetric.student_id == student_id
        )
        if subject:
            query = query.filter(StudentPerformanceMetric.subject == subject)
        return query.order_by(StudentPerformanceMetric.subject).all()

    def record_accuracy(self, student_id: str, subject: str, accuracy: float) -> StudentPerformanceMetric:
        """
        Prepend an accuracy value to the subject trend, creating the row on first use.

        The trend keeps the most recent ACCURACY_TREND_CAP values, newest first.
        """
        now = datetime.utcnow()
        row = self.db.query(StudentPerformanceMetric).filter(
            StudentPerformanceMetric.student_id == student_id,
            StudentPerformanceMetric.subject == subject,
        ).first()

        if row is None:
            row = StudentPerformanceMetric(
                id=str(uuid.uuid4()),
                student_id=student_id,
                subject=subject,
                accuracy_trend_json=dump_json([accuracy]),
                last_assessment_date=now,
            )
            self.db.add(row)
        else:
            trend = [accuracy] + load_json(row.accuracy_trend_json, [])
            row.accuracy_trend_json = dump_json(trend[:ACCURACY_TREND_CAP])
            row.last_assessment_date = now
            row.updated_at = now

        self.db.flush()
        return row

    @staticmethod
    def accuracy_trend(row: StudentPerformanceMetric) -> List[float]:
        return load_json(row.accuracy_trend_json, [])
