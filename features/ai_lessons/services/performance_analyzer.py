"""
Performance Analyzer.

Derives per-subject performance summaries (accuracy trend, trajectory, error
patterns) from stored metrics and worksheet submissions, and turns them into
adjustment recommendations for the next lesson.
"""
import json
import logging
from statistics import fmean, pvariance
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from features.ai_lessons.models.domain import (
    AdjustmentRecommendation,
    ErrorPattern,
    GroupCompatibility,
    PerformanceData,
    QueuedAdjustment,
    SpecificChanges,
)
from features.ai_lessons.repositories.adjustment_repository import LessonAdjustmentRepository
from features.ai_lessons.repositories.performance_repository import PerformanceMetricRepository
from features.ai_lessons.repositories.worksheet_repository import WorksheetRepository
from shared.utils.constants import (
    ACCURACY_ADVANCE,
    ACCURACY_MAINTAIN,
    ACCURACY_RETEACH,
    GROUP_VARIANCE_LIMIT,
    MAX_ERROR_EXAMPLES,
    MAX_GROUP_SIZE,
    MIN_GROUP_SIZE,
    RECENT_SUBMISSIONS,
    RECOMMENDATION_PRIORITY,
    TRAJECTORY_DELTA,
    TRAJECTORY_MIN_POINTS,
    TRAJECTORY_WINDOW,
)
from shared.utils.exceptions import DatabaseException, WorksheetNotFoundException
from shared.utils.formatting import format_number
from shared.utils.json_fields import load_json

logger = logging.getLogger(__name__)

WORKSHEET_SUBJECTS = {
    "spelling": "spelling",
    "math": "math",
    "math_computation": "math",
    "reading_comprehension": "reading",
    "phonics": "phonics",
    "writing": "writing",
    "written_expression": "writing",
}

SPECIFIC_CHANGES = {
    "advance": {
        "difficulty": "Increase by 0.5 grade levels",
        "scaffolding": "Reduce visual supports",
        "practice_type": "Introduce new concepts",
    },
    "maintain": {
        "difficulty": "Same level, different contexts",
        "scaffolding": "Maintain current supports",
        "practice_type": "Mixed review and application",
    },
    "reteach": {
        "difficulty": "Simplify by breaking into steps",
        "scaffolding": "Add visual models and examples",
        "practice_type": "Guided practice with immediate feedback",
    },
    "prerequisite": {
        "difficulty": "Reduce by 1 grade level",
        "scaffolding": "Maximum supports with step-by-step guides",
        "focus_areas": ["foundational skills"],
        "practice_type": "Basic skill building",
    },
}


def adjustment_type_for_accuracy(accuracy: float) -> str:
    """Map an accuracy percentage onto advance / maintain / reteach / prerequisite."""
    if accuracy >= ACCURACY_ADVANCE:
        return "advance"
    if accuracy >= ACCURACY_MAINTAIN:
        return "maintain"
    if accuracy >= ACCURACY_RETEACH:
        return "reteach"
    return "prerequisite"


def submission_priority(accuracy: float) -> int:
    """Queue priority for an adjustment raised by a graded worksheet."""
    if accuracy < ACCURACY_RETEACH:
        return 8
    if accuracy < ACCURACY_MAINTAIN:
        return 6
    return 4


class PerformanceAnalyzer:
    """Reads performance history and recommends the next instructional adjustment."""

    def __init__(self, db: Session):
        self.db = db
        self.metric_repo = PerformanceMetricRepository(db)
        self.worksheet_repo = WorksheetRepository(db)
        self.adjustment_repo = LessonAdjustmentRepository(db)

    def analyze_student_performance(
        self, student_id: str, subject: Optional[str] = None
    ) -> List[PerformanceData]:
        """
        Summarise a student's performance, one entry per stored subject metric.

        Args:
            student_id: Student to analyse
            subject: Restrict to one subject

        Returns:
            List of PerformanceData (empty when the student has no metrics)
        """
        metrics = self.metric_repo.get_for_student(student_id, subject)
        if not metrics:
            return []

        recent = self.worksheet_repo.get_recent_submissions(student_id, RECENT_SUBMISSIONS)

        performance = []
        for metric in metrics:
            subject_submissions = [
                submission for submission, worksheet_type in recent
                if self.map_worksheet_type_to_subject(worksheet_type) == metric.subject
            ]
            trend = self.metric_repo.accuracy_trend(metric)
            performance.append(PerformanceData(
                student_id=student_id,
                subject=metric.subject,
                recent_accuracy=trend,
                error_patterns=self.extract_error_patterns(subject_submissions),
                current_level=metric.current_level or 0.0,
                trajectory=self.calculate_trajectory(trend),
                confidence_score=metric.confidence_score or 0.5,
            ))
        return performance

    @staticmethod
    def calculate_trajectory(accuracy_trend: List[float]) -> str:
        """
        Compare the three most recent accuracies with the (up to) three before them.

        Returns:
            "improving" when the recent mean is more than 5 points higher,
            "declining" when more than 5 points lower, otherwise "stable"
        """
        if len(accuracy_trend) < TRAJECTORY_MIN_POINTS:
            return "stable"

        recent = accuracy_trend[:TRAJECTORY_WINDOW]
        older = accuracy_trend[TRAJECTORY_WINDOW:TRAJECTORY_WINDOW * 2]
        if not older:
            return "stable"

        difference = fmean(recent) - fmean(older)
        if difference > TRAJECTORY_DELTA:
            return "improving"
        if difference < -TRAJECTORY_DELTA:
            return "declining"
        return "stable"

    @staticmethod
    def extract_error_patterns(submissions: List[Any]) -> List[ErrorPattern]:
        """
        Count incorrect responses by error type across submissions (newest first).

        Only responses marked incorrect that name an errorType are counted.
        """
        patterns: Dict[str, ErrorPattern] = {}

        for submission in submissions:
            responses = load_json(submission.student_responses_json, []) or []
            for response in responses:
                if response.get("isCorrect") or not response.get("errorType"):
                    continue
                error_type = response["errorType"]
                pattern = patterns.get(error_type)
                if pattern is None:
                    pattern = ErrorPattern(type=error_type, frequency=0)
                    patterns[error_type] = pattern
                pattern.frequency += 1
                pattern.examples.append(response.get("studentAnswer"))
                pattern.last_occurrence = submission.created_at

        ranked = sorted(patterns.values(), key=lambda p: p.frequency, reverse=True)
        for pattern in ranked:
            pattern.examples = pattern.examples[:MAX_ERROR_EXAMPLES]
        return ranked

    def get_adjustment_recommendation(
        self, student_id: str, subject: str
    ) -> Optional[AdjustmentRecommendation]:
        """
        Recommend the next adjustment for a student in a subject.

        A pending queued adjustment (highest priority) takes precedence; otherwise
        the latest accuracy decides. Returns None without performance data.
        """
        performance = self.analyze_student_performance(student_id, subject)
        if not performance:
            return None
        current = performance[0]
        latest_accuracy = current.recent_accuracy[0] if current.recent_accuracy else 0

        pending = self.adjustment_repo.get_pending(student_id=student_id, subject=subject, limit=1)
        if pending:
            adjustment_type = pending[0].adjustment_type
            priority = pending[0].priority
        else:
            adjustment_type = adjustment_type_for_accuracy(latest_accuracy)
            priority = RECOMMENDATION_PRIORITY[adjustment_type]

        return AdjustmentRecommendation(
            type=adjustment_type,
            reason=self._adjustment_reason(adjustment_type, latest_accuracy, current),
            specific_changes=self._specific_changes(adjustment_type, current),
            priority=priority,
        )

    @staticmethod
    def _adjustment_reason(adjustment_type: str, accuracy: float, performance: PerformanceData) -> str:
        acc = format_number(accuracy)
        trajectory = performance.trajectory
        main_error = performance.error_patterns[0].type if performance.error_patterns else None

        if adjustment_type == "advance":
            return (
                f"Student achieved {acc}% accuracy and shows {trajectory} performance. "
                f"Ready for more challenging content."
            )
        if adjustment_type == "maintain":
            return (
                f"Student at {acc}% accuracy with {trajectory} trajectory. "
                f"Continuing at current level with variation."
            )
        if adjustment_type == "reteach":
            struggle = f", struggling with {main_error} errors" if main_error else ""
            return f"Student at {acc}% accuracy{struggle}. Reteaching with increased scaffolding."
        address = f" to address {main_error} issues" if main_error else ""
        return f"Student at {acc}% accuracy. Stepping back to prerequisite skills{address}."

    @staticmethod
    def _specific_changes(adjustment_type: str, performance: PerformanceData) -> SpecificChanges:
        changes = dict(SPECIFIC_CHANGES[adjustment_type])
        if adjustment_type == "reteach":
            changes["focus_areas"] = [p.type for p in performance.error_patterns[:2]]
        return SpecificChanges(**changes)

    @staticmethod
    def map_worksheet_type_to_subject(worksheet_type: Optional[str]) -> str:
        return WORKSHEET_SUBJECTS.get(worksheet_type or "", "reading")

    def mark_adjustment_processed(self, adjustment_id: str):
        """Flag one queued adjustment as processed."""
        try:
            self.adjustment_repo.mark_processed([adjustment_id])
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException("mark adjustment processed", e) from e

    def get_group_compatibility(self, student_ids: List[str]) -> GroupCompatibility:
        """
        Decide whether students can share a group lesson.

        Among subjects with data for every student, the one whose latest
        accuracies have the lowest population variance is chosen; the group is
        compatible when that variance is under 400 (about 20 points spread).
        """
        if len(student_ids) < MIN_GROUP_SIZE or len(student_ids) > MAX_GROUP_SIZE:
            return GroupCompatibility(compatible=False, reason="Groups must have 2-6 students")

        latest_by_subject: Dict[str, List[float]] = {}
        for student_id in student_ids:
            for perf in self.analyze_student_performance(student_id):
                latest = perf.recent_accuracy[0] if perf.recent_accuracy else 0
                latest_by_subject.setdefault(perf.subject, []).append(latest)

        best_subject = None
        lowest_variance = float("inf")
        for subject, accuracies in latest_by_subject.items():
            if len(accuracies) != len(student_ids):
                continue
            variance = pvariance(accuracies)
            if variance < lowest_variance:
                lowest_variance = variance
                best_subject = subject

        if best_subject is None:
            return GroupCompatibility(compatible=False, reason="No common subject data for all students")

        if lowest_variance < GROUP_VARIANCE_LIMIT:
            return GroupCompatibility(
                compatible=True,
                reason=f"Students have similar {best_subject} performance levels",
                grouping_strategy=f"Group by {best_subject} with differentiated materials",
            )
        return GroupCompatibility(
            compatible=False,
            reason=f"Performance levels too varied in {best_subject}",
        )

    def record_worksheet_submission(
        self,
        worksheet_id: str,
        accuracy_percentage: float,
        student_responses: Optional[list] = None,
        skills_assessed: Any = None,
        ai_analysis: Optional[str] = None,
    ) -> QueuedAdjustment:
        """
        Store a graded worksheet and fold it into the student's performance history.

        The accuracy is prepended to the subject trend and an adjustment is queued
        according to the accuracy bands.

        Returns:
            The queued adjustment

        Raises:
            WorksheetNotFoundException: Unknown worksheet
            DatabaseException: Persisting failed
        """
        worksheet = self.worksheet_repo.get_by_id(worksheet_id)
        if worksheet is None:
            raise WorksheetNotFoundException(worksheet_id)

        subject = self.map_worksheet_type_to_subject(worksheet.worksheet_type)
        try:
            submission = self.worksheet_repo.create_submission(
                worksheet_id, accuracy_percentage, student_responses, skills_assessed, ai_analysis
            )
            self.metric_repo.record_accuracy(worksheet.student_id, subject, accuracy_percentage)
            adjustment = self.adjustment_repo.create(
                student_id=worksheet.student_id,
                subject=subject,
                adjustment_type=adjustment_type_for_accuracy(accuracy_percentage),
                details={
                    "accuracy": accuracy_percentage,
                    "skills_assessed": skills_assessed,
                    "ai_analysis": ai_analysis,
                },
                priority=submission_priority(accuracy_percentage),
                worksheet_submission_id=submission.id,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException("record worksheet submission", e) from e

        logger.info(json.dumps({
            "step": "SUBMISSION_RECORDED",
            "worksheet_id": worksheet_id,
            "subject": subject,
            "accuracy": accuracy_percentage,
            "adjustment_type": adjustment.adjustment_type,
            "priority": adjustment.priority,
        }))
        return adjustment
