"""
Assessment Registry.

Knows which kinds of student data exist (assessment_types), turns the raw student
records into a uniform list of StudentAssessmentData, and renders each piece into
prompt text.
"""
import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from features.ai_lessons.models.domain import (
    AssessmentTypeCreate,
    AssessmentTypeDefinition,
    StudentAssessmentData,
)
from features.ai_lessons.repositories.assessment_type_repository import AssessmentTypeRepository
from features.ai_lessons.repositories.performance_repository import PerformanceMetricRepository
from shared.repositories.student_repository import StudentRepository
from shared.utils.constants import DEFAULT_ASSESSMENT_CONFIDENCE, DEFAULT_MATH_ACCURACY
from shared.utils.exceptions import AssessmentTypeExistsException, DatabaseException
from shared.utils.formatting import format_number
from shared.utils.json_fields import load_json

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

# Confidence attached to each record source
READING_LEVEL_CONFIDENCE = 0.9
COGNITIVE_CONFIDENCE = 0.85
COGNITIVE_ASSESSMENTS = ("processing_speed", "working_memory")


class AssessmentRegistry:
    """
    Registry of assessment types backed by the assessment_types table.

    Types are cached per instance; a lookup miss reloads the cache once so that
    types registered elsewhere become visible.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = AssessmentTypeRepository(db)
        self.student_repo = StudentRepository(db)
        self.metric_repo = PerformanceMetricRepository(db)
        self._cache: Dict[str, AssessmentTypeDefinition] = {}
        self._loaded = False

    def _load_assessment_types(self):
        for assessment_type in self.repo.get_all():
            self._cache[assessment_type.name] = assessment_type
        self._loaded = True

    def _ensure_loaded(self):
        if not self._loaded:
            self._load_assessment_types()

    # ─── Type registry ────────────────────────────────────────────────

    def get_assessment_type(self, name: str) -> Optional[AssessmentTypeDefinition]:
        """Return a registered type by name, or None."""
        self._ensure_loaded()
        if name not in self._cache:
            self._load_assessment_types()
        return self._cache.get(name)

    def get_all_assessment_types(self) -> List[AssessmentTypeDefinition]:
        self._ensure_loaded()
        if not self._cache:
            self._load_assessment_types()
        return list(self._cache.values())

    def register_new_assessment_type(self, assessment: AssessmentTypeCreate) -> AssessmentTypeDefinition:
        """
        Persist and cache a new assessment type.

        Raises:
            AssessmentTypeExistsException: A type with this name already exists
            DatabaseException: The insert failed
        """
        if self.repo.get_by_name(assessment.name):
            raise AssessmentTypeExistsException(assessment.name)

        try:
            created = self.repo.create(assessment)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise AssessmentTypeExistsException(assessment.name) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException("register assessment type", e) from e

        self._cache[created.name] = created
        logger.info(json.dumps({
            "step": "ASSESSMENT_TYPE_REGISTERED",
            "name": created.name,
            "category": created.category,
        }))
        return created

    # ─── Student data ─────────────────────────────────────────────────

    def get_student_assessments(self, student_id: str) -> List[StudentAssessmentData]:
        """
        Collect every available piece of assessment data for a student.

        Sources: the student's grade level, reading level, IEP goals and cognitive
        scores from student_details, and math performance metrics.
        """
        assessments: List[StudentAssessmentData] = []

        student = self.student_repo.get_by_id(student_id)
        if student and student.grade_level:
            assessments.append(StudentAssessmentData(
                student_id=student_id,
                assessment_type="grade_level",
                data=student.grade_level,
                collected_at=datetime.utcnow(),
                confidence=1.0,
            ))

        details = self.student_repo.get_details(student_id)
        if details:
            collected_at = details.updated_at or datetime.utcnow()

            if details.grade_month_reading_level is not None:
                assessments.append(StudentAssessmentData(
                    student_id=student_id,
                    assessment_type="reading_level",
                    data={
                        "grade_level": details.grade_month_reading_level,
                        "wpm": details.reading_wpm,
                        "comprehension": details.reading_comprehension,
                    },
                    collected_at=collected_at,
                    confidence=READING_LEVEL_CONFIDENCE,
                ))

            iep_goals = load_json(details.iep_goals_json, [])
            if iep_goals:
                assessments.append(StudentAssessmentData(
                    student_id=student_id,
                    assessment_type="iep_goals",
                    data=iep_goals,
                    collected_at=collected_at,
                    confidence=1.0,
                ))

            cognitive = load_json(details.cognitive_assessments_json, {}) or {}
            for name in COGNITIVE_ASSESSMENTS:
                if cognitive.get(name):
                    assessments.append(StudentAssessmentData(
                        student_id=student_id,
                        assessment_type=name,
                        data=cognitive[name],
                        collected_at=collected_at,
                        confidence=COGNITIVE_CONFIDENCE,
                    ))

        for metric in self.metric_repo.get_for_student(student_id):
            if metric.subject != "math" or not metric.current_level:
                continue
            trend = self.metric_repo.accuracy_trend(metric)
            assessments.append(StudentAssessmentData(
                student_id=student_id,
                assessment_type="math_computation",
                data={
                    "grade_level": metric.current_level,
                    "accuracy": trend[0] if trend else DEFAULT_MATH_ACCURACY,
                    "fluency": "developing",
                },
                collected_at=metric.last_assessment_date or metric.updated_at or datetime.utcnow(),
                confidence=metric.confidence_score,
            ))

        return assessments

    # ─── Interpretation ───────────────────────────────────────────────

    def validate_assessment_data(self, assessment_type: str, data: Any) -> bool:
        """
        Check data against the type's schema.

        Object schemas fail when a property flagged `required` is absent; array
        schemas require a list. Unknown types never validate.
        """
        self._ensure_loaded()
        definition = self._cache.get(assessment_type)
        if not definition:
            return False

        schema = definition.data_schema or {}
        if schema.get("type") == "array":
            return isinstance(data, list)
        if schema.get("type") == "object" and schema.get("properties"):
            if not isinstance(data, dict):
                return False
            for key, prop in schema["properties"].items():
                if isinstance(prop, dict) and prop.get("required") and key not in data:
                    return False
        return True

    def interpret_assessment_for_prompt(self, assessment_type: str, data: Any) -> Dict[str, str]:
        """
        Render the type's prompt fragments for this data.

        `{key}` placeholders take data[key]; placeholders with no value are left as written.

        Returns:
            Dict with any of pacing / complexity / supports; empty for unknown types
        """
        self._ensure_loaded()
        definition = self._cache.get(assessment_type)
        if not definition:
            return {}

        values = data if isinstance(data, dict) else {}

        def substitute(match: re.Match) -> str:
            value = values.get(match.group(1))
            if value is None:
                return match.group(0)
            return format_number(value) if isinstance(value, (int, float)) else str(value)

        fragments = definition.prompt_fragments.model_dump(exclude_none=True)
        return {key: _PLACEHOLDER.sub(substitute, text) for key, text in fragments.items() if text}

    def calculate_data_confidence(self, assessments: List[StudentAssessmentData]) -> float:
        """
        Weighted confidence across a student's assessments.

        Sum(weight * confidence) / Sum(weight) over assessments whose type is
        registered; a missing confidence counts as 0.5. Returns 0 when nothing
        registered is present.
        """
        if not assessments:
            return 0.0
        self._ensure_loaded()

        total_weight = 0.0
        weighted_sum = 0.0
        for assessment in assessments:
            definition = self._cache.get(assessment.assessment_type)
            if not definition:
                continue
            confidence = (
                assessment.confidence
                if assessment.confidence is not None
                else DEFAULT_ASSESSMENT_CONFIDENCE
            )
            total_weight += definition.confidence_weight
            weighted_sum += definition.confidence_weight * confidence

        return weighted_sum / total_weight if total_weight > 0 else 0.0
