"""
Adjustment Queue.

Priority-ordered pending instructional adjustments per student and subject,
with summaries, per-student batches for the next lesson, and cleanup.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from features.ai_lessons.models.domain import (
    AdjustmentBatch,
    LessonModification,
    QueuedAdjustment,
    StudentAdjustmentSummary,
    SubjectAdjustmentSummary,
)
from features.ai_lessons.repositories.adjustment_repository import LessonAdjustmentRepository
from shared.utils.constants import (
    ADJUSTMENT_TREND_SCORES,
    DEFAULT_ADJUSTMENT_PRIORITY,
    MAX_ADJUSTMENTS_PER_BATCH,
    TREND_IMPROVING_SCORE,
    TREND_STRUGGLING_SCORE,
    TREND_WINDOW,
)
from shared.utils.exceptions import DatabaseException

logger = logging.getLogger(__name__)

NEXT_LESSON_MODIFICATIONS = {
    "advance": [
        "Increase complexity",
        "Reduce scaffolding",
        "Add extension activities",
        "Introduce new concepts",
    ],
    "maintain": [
        "Continue current level",
        "Vary contexts",
        "Mix review and practice",
    ],
    "reteach": [
        "Break down concepts",
        "Add visual supports",
        "Increase guided practice",
        "Provide more examples",
    ],
    "prerequisite": [
        "Review foundational skills",
        "Maximum scaffolding",
        "Simplified instructions",
        "Focus on basics",
    ],
}


class AdjustmentQueueManager:
    """Reads and updates the lesson_adjustment_queue table."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = LessonAdjustmentRepository(db)

    def get_pending_adjustments(
        self,
        student_id: Optional[str] = None,
        subject: Optional[str] = None,
        limit: int = 10,
        student_ids: Optional[List[str]] = None,
    ) -> List[QueuedAdjustment]:
        """Unprocessed adjustments ordered by priority, then newest first."""
        return self.repo.get_pending(
            student_id=student_id, subject=subject, limit=limit, student_ids=student_ids
        )

    def process_adjustment(self, adjustment_id: str) -> bool:
        """Mark one adjustment processed. Returns False when no row matched."""
        return self.process_batch([adjustment_id]) > 0

    def process_batch(self, adjustment_ids: List[str]) -> int:
        """
        Mark adjustments processed.

        Returns:
            Number of rows updated
        """
        if not adjustment_ids:
            return 0
        try:
            count = self.repo.mark_processed(adjustment_ids)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException("process adjustments", e) from e

        logger.info(json.dumps({
            "step": "ADJUSTMENTS_PROCESSED",
            "requested": len(adjustment_ids),
            "processed": count,
        }))
        return count

    def create_adjustment(
        self,
        student_id: str,
        subject: str,
        adjustment_type: str,
        details: Optional[dict] = None,
        priority: Optional[int] = None,
        worksheet_submission_id: Optional[str] = None,
    ) -> QueuedAdjustment:
        """Queue an adjustment; priority defaults by type."""
        if not priority:
            priority = DEFAULT_ADJUSTMENT_PRIORITY.get(adjustment_type, 5)
        try:
            adjustment = self.repo.create(
                student_id=student_id,
                subject=subject,
                adjustment_type=adjustment_type,
                details=details or {},
                priority=priority,
                worksheet_submission_id=worksheet_submission_id,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException("create adjustment", e) from e
        return adjustment

    @staticmethod
    def determine_trend(recent_types: List[str]) -> str:
        """Mean score of recent adjustment types: >= 2.5 improving, <= 1 struggling."""
        if not recent_types:
            return "stable"
        scores = [ADJUSTMENT_TREND_SCORES.get(t, 2) for t in recent_types]
        average = sum(scores) / len(scores)
        if average >= TREND_IMPROVING_SCORE:
            return "improving"
        if average <= TREND_STRUGGLING_SCORE:
            return "struggling"
        return "stable"

    def get_student_adjustment_summary(self, student_id: str) -> StudentAdjustmentSummary:
        """
        Pending/processed counts, per-subject pending lists and trends, and
        recommendations for one student.
        """
        adjustments = self.repo.get_all_for_student(student_id)
        pending = [a for a in adjustments if not a.processed]

        by_subject: Dict[str, SubjectAdjustmentSummary] = {}
        for adjustment in adjustments:
            subject = adjustment.subject
            if subject in by_subject:
                continue
            recent_types = [a.adjustment_type for a in adjustments if a.subject == subject][:TREND_WINDOW]
            by_subject[subject] = SubjectAdjustmentSummary(
                pending=[a for a in pending if a.subject == subject],
                trend=self.determine_trend(recent_types),
            )

        recommendations = []
        for subject, summary in by_subject.items():
            if summary.trend == "struggling" and summary.pending:
                recommendations.append(f"Consider additional support for {subject}")
            elif summary.trend == "improving" and any(
                a.adjustment_type == "advance" for a in summary.pending
            ):
                recommendations.append(f"Student ready for enrichment in {subject}")

        return StudentAdjustmentSummary(
            pending=len(pending),
            processed=len(adjustments) - len(pending),
            by_subject=by_subject,
            recommendations=recommendations,
        )

    def get_high_priority_adjustments(
        self, student_ids: Optional[List[str]] = None, limit: int = 5
    ) -> List[AdjustmentBatch]:
        """
        Group the most urgent pending adjustments into per-student batches.

        Reads the top 3*limit pending rows, groups them by student in priority
        order and returns at most `limit` batches.
        """
        adjustments = self.repo.get_pending(limit=limit * 3, student_ids=student_ids)

        by_student: Dict[str, List[QueuedAdjustment]] = {}
        for adjustment in adjustments:
            by_student.setdefault(adjustment.student_id, []).append(adjustment)

        batches = []
        for student_id, student_adjustments in by_student.items():
            changes_by_subject: Dict[str, List[str]] = {}
            for adjustment in student_adjustments:
                changes = changes_by_subject.setdefault(adjustment.subject, [])
                for change in NEXT_LESSON_MODIFICATIONS.get(
                    adjustment.adjustment_type, ["Maintain current approach"]
                ):
                    if change not in changes:
                        changes.append(change)

            batches.append(AdjustmentBatch(
                student_id=student_id,
                adjustments=student_adjustments[:MAX_ADJUSTMENTS_PER_BATCH],
                recommended_action=self.recommended_action(student_adjustments),
                next_lesson_modifications=[
                    LessonModification(subject=subject, changes=changes)
                    for subject, changes in changes_by_subject.items()
                ],
            ))

        return batches[:limit]

    @staticmethod
    def recommended_action(adjustments: List[QueuedAdjustment]) -> str:
        if not adjustments:
            return "Continue current program"

        types = {a.adjustment_type for a in adjustments}
        if "prerequisite" in types:
            return "Focus on foundational skills before advancing"
        if "reteach" in types and "advance" not in types:
            return "Reteach current concepts with additional support"
        if "advance" in types and "reteach" not in types:
            return "Student ready for more challenging content"
        return "Mixed performance - differentiate by topic"

    def cleanup_old_processed_adjustments(
        self, days_old: int = 30, student_ids: Optional[List[str]] = None
    ) -> int:
        """
        Delete processed adjustments processed more than `days_old` days ago.

        Returns:
            Number of rows deleted
        """
        cutoff = datetime.utcnow() - timedelta(days=days_old)
        try:
            deleted = self.repo.delete_processed_before(cutoff, student_ids)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException("cleanup adjustments", e) from e

        logger.info(json.dumps({
            "step": "ADJUSTMENT_CLEANUP",
            "days_old": days_old,
            "deleted": deleted,
        }))
        return deleted
