"""
Tests for features/ai_lessons/services/assessment_registry.py

Covers: type lookup and registration, student data collection, schema
validation, prompt fragment interpolation and weighted data confidence.
"""
from datetime import datetime

import pytest
from unittest.mock import MagicMock
from sqlalchemy.exc import SQLAlchemyError

from features.ai_lessons.models.domain import (
    AssessmentTypeCreate,
    PromptFragments,
    StudentAssessmentData,
)
from features.ai_lessons.services.assessment_registry import AssessmentRegistry
from shared.utils.exceptions import AssessmentTypeExistsException, DatabaseException
from tests.helpers.database_helpers import make_details, make_metric, make_student


def _assessment(kind, confidence=None, data=None):
    return StudentAssessmentData(
        student_id="s1",
        assessment_type=kind,
        data=data or {},
        collected_at=datetime.utcnow(),
        confidence=confidence,
    )


# ===========================================================================
# Type registry
# ===========================================================================

class TestTypeRegistry:

    def test_loads_seeded_types(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        names = {t.name for t in registry.get_all_assessment_types()}
        assert names == {"reading_level", "math_computation", "processing_speed", "working_memory", "iep_goals"}

    def test_get_unknown_type_returns_none(self, seeded_db):
        assert AssessmentRegistry(seeded_db).get_assessment_type("behavior_chart") is None

    def test_miss_reloads_types_registered_elsewhere(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        registry.get_all_assessment_types()

        AssessmentRegistry(seeded_db).register_new_assessment_type(AssessmentTypeCreate(
            name="behavior_chart", category="behavioral", data_schema={"type": "object"},
        ))

        found = registry.get_assessment_type("behavior_chart")
        assert found is not None
        assert found.category == "behavioral"

    def test_register_new_type(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        created = registry.register_new_assessment_type(AssessmentTypeCreate(
            name="spelling_inventory",
            category="academic",
            data_schema={"type": "object", "properties": {"stage": {"type": "string"}}},
            prompt_fragments=PromptFragments(pacing="Spelling stage {stage}"),
            confidence_weight=0.8,
        ))

        assert created.id
        assert registry.get_assessment_type("spelling_inventory").confidence_weight == 0.8

    def test_register_duplicate_raises(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        with pytest.raises(AssessmentTypeExistsException):
            registry.register_new_assessment_type(AssessmentTypeCreate(
                name="reading_level", category="academic", data_schema={},
            ))

    def test_register_db_failure_rolls_back(self):
        db = MagicMock()
        registry = AssessmentRegistry(db)
        registry.repo = MagicMock()
        registry.repo.get_by_name.return_value = None
        registry.repo.create.side_effect = SQLAlchemyError("locked")

        with pytest.raises(DatabaseException):
            registry.register_new_assessment_type(AssessmentTypeCreate(
                name="x", category="academic", data_schema={},
            ))
        db.rollback.assert_called_once()


# ===========================================================================
# get_student_assessments
# ===========================================================================

class TestStudentAssessments:

    def test_unknown_student_has_no_data(self, seeded_db):
        assert AssessmentRegistry(seeded_db).get_student_assessments("nobody") == []

    def test_collects_every_source(self, seeded_db):
        student = make_student(seeded_db, grade_level="3")
        make_details(
            seeded_db, student.id,
            iep_goals=["Decode CVC words", "Add within 20"],
            reading_level="2.5", wpm=62, comprehension=75.0,
            cognitive={"processing_speed": {"percentile": 12}, "working_memory": {}},
        )
        make_metric(seeded_db, student.id, "math", [82.0, 70.0], current_level=2.0, confidence=0.6)

        assessments = AssessmentRegistry(seeded_db).get_student_assessments(student.id)
        by_type = {a.assessment_type: a for a in assessments}

        assert set(by_type) == {"grade_level", "reading_level", "iep_goals", "processing_speed", "math_computation"}
        assert by_type["grade_level"].data == "3"
        assert by_type["grade_level"].confidence == 1.0
        assert by_type["reading_level"].data == {"grade_level": "2.5", "wpm": 62, "comprehension": 75.0}
        assert by_type["reading_level"].confidence == 0.9
        assert by_type["iep_goals"].data == ["Decode CVC words", "Add within 20"]
        assert by_type["processing_speed"].confidence == 0.85
        assert by_type["math_computation"].data == {"grade_level": 2.0, "accuracy": 82.0, "fluency": "developing"}
        assert by_type["math_computation"].confidence == 0.6

    def test_math_without_trend_uses_default_accuracy(self, seeded_db):
        student = make_student(seeded_db)
        make_metric(seeded_db, student.id, "math", [], current_level=1.5)

        assessments = AssessmentRegistry(seeded_db).get_student_assessments(student.id)
        math = [a for a in assessments if a.assessment_type == "math_computation"][0]
        assert math.data["accuracy"] == 70

    def test_latest_accuracy_of_zero_is_kept(self, seeded_db):
        student = make_student(seeded_db)
        make_metric(seeded_db, student.id, "math", [0.0, 55.0], current_level=1.5)

        assessments = AssessmentRegistry(seeded_db).get_student_assessments(student.id)
        math = [a for a in assessments if a.assessment_type == "math_computation"][0]
        assert math.data["accuracy"] == 0.0

    def test_non_math_metrics_are_ignored(self, seeded_db):
        student = make_student(seeded_db, grade_level=None)
        make_metric(seeded_db, student.id, "reading", [90.0], current_level=3.0)

        assert AssessmentRegistry(seeded_db).get_student_assessments(student.id) == []


# ===========================================================================
# validate_assessment_data
# ===========================================================================

class TestValidateAssessmentData:

    def test_unknown_type_is_invalid(self, seeded_db):
        assert AssessmentRegistry(seeded_db).validate_assessment_data("nope", {}) is False

    def test_array_schema_requires_list(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        assert registry.validate_assessment_data("iep_goals", ["goal"]) is True
        assert registry.validate_assessment_data("iep_goals", "goal") is False

    def test_object_schema_requires_dict(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        assert registry.validate_assessment_data("reading_level", {"grade_level": 2}) is True
        assert registry.validate_assessment_data("reading_level", [2]) is False

    def test_required_property_missing(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        registry.register_new_assessment_type(AssessmentTypeCreate(
            name="fluency_probe",
            category="academic",
            data_schema={"type": "object", "properties": {"wcpm": {"type": "number", "required": True}}},
        ))

        assert registry.validate_assessment_data("fluency_probe", {"wcpm": 40}) is True
        assert registry.validate_assessment_data("fluency_probe", {"errors": 3}) is False


# ===========================================================================
# interpret_assessment_for_prompt
# ===========================================================================

class TestInterpretAssessment:

    def test_fills_placeholders(self, seeded_db):
        result = AssessmentRegistry(seeded_db).interpret_assessment_for_prompt(
            "math_computation", {"grade_level": 2.5, "accuracy": 80.0},
        )
        assert result == {
            "pacing": "Math at 2.5 grade level",
            "complexity": "80% accuracy baseline",
            "supports": "Visual number lines and step-by-step examples",
        }

    def test_missing_value_leaves_placeholder(self, seeded_db):
        result = AssessmentRegistry(seeded_db).interpret_assessment_for_prompt(
            "reading_level", {"grade_level": "2.5", "lexile": None},
        )
        assert result["pacing"] == "Reading at 2.5 grade level"
        assert result["complexity"] == "Lexile {lexile}L texts"

    def test_unknown_type_is_empty(self, seeded_db):
        assert AssessmentRegistry(seeded_db).interpret_assessment_for_prompt("nope", {}) == {}

    def test_list_data_keeps_static_fragments(self, seeded_db):
        result = AssessmentRegistry(seeded_db).interpret_assessment_for_prompt("iep_goals", ["goal"])
        assert result["pacing"] == "Aligned to IEP goals"


# ===========================================================================
# calculate_data_confidence
# ===========================================================================

class TestDataConfidence:

    def test_empty_is_zero(self, seeded_db):
        assert AssessmentRegistry(seeded_db).calculate_data_confidence([]) == 0.0

    def test_unregistered_types_are_skipped(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        assert registry.calculate_data_confidence([_assessment("grade_level", 1.0)]) == 0.0

    def test_weighted_mean(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        registry.register_new_assessment_type(AssessmentTypeCreate(
            name="light_probe", category="academic", data_schema={}, confidence_weight=0.5,
        ))

        result = registry.calculate_data_confidence([
            _assessment("reading_level", 0.9),
            _assessment("light_probe", 0.3),
        ])
        assert result == pytest.approx((0.9 * 1.0 + 0.3 * 0.5) / 1.5)

    def test_missing_confidence_counts_half(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        result = registry.calculate_data_confidence([
            _assessment("reading_level", None),
            _assessment("iep_goals", 1.0),
        ])
        assert result == pytest.approx(0.75)

    def test_zero_confidence_is_not_replaced(self, seeded_db):
        registry = AssessmentRegistry(seeded_db)
        assert registry.calculate_data_confidence([_assessment("iep_goals", 0.0)]) == 0.0
