"""Default assessment types and material constraints, and the seeding routine for them."""
import json
import logging
from typing import Dict

from sqlalchemy.orm import Session

from features.ai_lessons.models.domain import (
    AssessmentTypeCreate,
    InterpretationRules,
    PromptFragments,
)
from features.ai_lessons.repositories.assessment_type_repository import AssessmentTypeRepository
from features.ai_lessons.repositories.constraint_repository import MaterialConstraintRepository

logger = logging.getLogger(__name__)

DEFAULT_ASSESSMENT_TYPES = [
    AssessmentTypeCreate(
        name="reading_level",
        category="academic",
        data_schema={
            "type": "object",
            "properties": {
                "grade_level": {"type": "number"},
                "lexile": {"type": "number"},
                "wpm": {"type": "number"},
            },
        },
        interpretation_rules=InterpretationRules(
            use_for=["text_complexity", "passage_length", "vocabulary_selection"], weight="high"
        ),
        prompt_fragments=PromptFragments(
            pacing="Reading at {grade_level} grade level",
            complexity="Lexile {lexile}L texts",
            supports="Include phonics support for challenging words",
        ),
    ),
    AssessmentTypeCreate(
        name="math_computation",
        category="academic",
        data_schema={
            "type": "object",
            "properties": {
                "grade_level": {"type": "number"},
                "accuracy": {"type": "number"},
                "fluency": {"type": "string"},
            },
        },
        interpretation_rules=InterpretationRules(
            use_for=["problem_difficulty", "number_range", "operation_types"], weight="high"
        ),
        prompt_fragments=PromptFragments(
            pacing="Math at {grade_level} grade level",
            complexity="{accuracy}% accuracy baseline",
            supports="Visual number lines and step-by-step examples",
        ),
    ),
    AssessmentTypeCreate(
        name="processing_speed",
        category="cognitive",
        data_schema={
            "type": "object",
            "properties": {
                "percentile": {"type": "number"},
                "standard_score": {"type": "number"},
            },
        },
        interpretation_rules=InterpretationRules(
            use_for=["worksheet_length", "time_limits", "problem_count"], weight="medium"
        ),
        prompt_fragments=PromptFragments(
            pacing="Adjusted for {percentile}th percentile processing speed",
            complexity="Reduced problem count",
            supports="Clear visual organization",
        ),
    ),
    AssessmentTypeCreate(
        name="working_memory",
        category="cognitive",
        data_schema={
            "type": "object",
            "properties": {
                "percentile": {"type": "number"},
                "digit_span": {"type": "number"},
            },
        },
        interpretation_rules=InterpretationRules(
            use_for=["instruction_complexity", "multi_step_problems"], weight="medium"
        ),
        prompt_fragments=PromptFragments(
            pacing="Single-step instructions",
            complexity="Break complex problems into parts",
            supports="Reference charts on worksheet",
        ),
    ),
    AssessmentTypeCreate(
        name="iep_goals",
        category="iep",
        data_schema={"type": "array", "items": {"type": "string"}},
        interpretation_rules=InterpretationRules(
            use_for=["skill_focus", "success_criteria"], weight="high"
        ),
        prompt_fragments=PromptFragments(
            pacing="Aligned to IEP goals",
            complexity="Target specific IEP objectives",
            supports="IEP accommodations included",
        ),
    ),
]

# (constraint_type, description, validation_regex)
DEFAULT_MATERIAL_CONSTRAINTS = [
    ("forbidden", "No cutting required", r"cut\s+out|scissors|cut\s+and\s+paste"),
    ("forbidden", "No physical manipulatives", r"manipulatives|blocks|counters|tiles|cards"),
    ("forbidden", "No technology requirements", r"app|website|computer|tablet|online"),
    ("forbidden", "No movement activities", r"stand\s+up|walk\s+around|move\s+to|gallery\s+walk"),
    ("forbidden", "No laminating needed", r"laminate|dry\s+erase|reusable"),
    ("acceptable", "Basic classroom materials only", r"pencil|paper|crayons|desk"),
    ("required", "All materials on worksheet", r"included|provided|on\s+this\s+page"),
]


def seed_lesson_defaults(db: Session) -> Dict[str, int]:
    """
    Insert the default assessment types and material constraints that are missing.

    Assessment types are matched by name; constraints are only seeded into an
    empty table. Caller commits.

    Returns:
        Counts of rows inserted per table
    """
    type_repo = AssessmentTypeRepository(db)
    types_added = 0
    for assessment_type in DEFAULT_ASSESSMENT_TYPES:
        if type_repo.get_by_name(assessment_type.name):
            continue
        type_repo.create(assessment_type)
        types_added += 1

    constraint_repo = MaterialConstraintRepository(db)
    constraints_added = 0
    if constraint_repo.count() == 0:
        for constraint_type, description, regex in DEFAULT_MATERIAL_CONSTRAINTS:
            constraint_repo.create(constraint_type, description, regex)
            constraints_added += 1

    counts = {"assessment_types": types_added, "material_constraints": constraints_added}
    logger.info(json.dumps({"step": "SEED_LESSON_DEFAULTS", **counts}))
    return counts
