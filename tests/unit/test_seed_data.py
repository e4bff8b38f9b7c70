"""Unit tests for features/ai_lessons/services/seed_data.py"""
from features.ai_lessons.models.database import AssessmentType, MaterialConstraint
from features.ai_lessons.repositories.constraint_repository import MaterialConstraintRepository
from features.ai_lessons.services.seed_data import (
    DEFAULT_ASSESSMENT_TYPES,
    DEFAULT_MATERIAL_CONSTRAINTS,
    seed_lesson_defaults,
)
from shared.utils.json_fields import load_json


class TestSeedLessonDefaults:

    def test_first_run_inserts_everything(self, db_session):
        counts = seed_lesson_defaults(db_session)

        assert counts == {"assessment_types": 5, "material_constraints": 7}
        assert db_session.query(AssessmentType).count() == len(DEFAULT_ASSESSMENT_TYPES)
        assert db_session.query(MaterialConstraint).count() == len(DEFAULT_MATERIAL_CONSTRAINTS)

    def test_second_run_is_a_no_op(self, db_session):
        seed_lesson_defaults(db_session)
        assert seed_lesson_defaults(db_session) == {"assessment_types": 0, "material_constraints": 0}

    def test_existing_constraints_are_left_alone(self, db_session):
        MaterialConstraintRepository(db_session).create("forbidden", "No glitter")

        counts = seed_lesson_defaults(db_session)

        assert counts["material_constraints"] == 0
        assert [c.description for c in MaterialConstraintRepository(db_session).get_active()] == ["No glitter"]

    def test_stored_assessment_type_shape(self, db_session):
        seed_lesson_defaults(db_session)

        row = db_session.query(AssessmentType).filter_by(name="processing_speed").one()
        assert row.category == "cognitive"
        assert row.confidence_weight == 1.0
        assert load_json(row.interpretation_rules_json) == {
            "use_for": ["worksheet_length", "time_limits", "problem_count"],
            "weight": "medium",
        }
        assert load_json(row.prompt_fragments_json)["pacing"] == (
            "Adjusted for {percentile}th percentile processing speed"
        )

    def test_does_not_commit(self, db_session, mocker):
        commit = mocker.spy(db_session, "commit")
        seed_lesson_defaults(db_session)
        commit.assert_not_called()
