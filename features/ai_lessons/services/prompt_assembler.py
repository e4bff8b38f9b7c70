"""
Prompt Assembler.

Builds the system and user prompts for one lesson from the collected student
data, and checks model output against the zero-prep material rules.
"""
import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from sqlalchemy.orm import Session

from features.ai_lessons.models.domain import (
    AssembledPrompt,
    DataConfidenceReport,
    PromptContext,
    PromptValidation,
)
from features.ai_lessons.repositories.constraint_repository import MaterialConstraintRepository
from features.ai_lessons.services.assessment_registry import AssessmentRegistry
from features.ai_lessons.services.performance_analyzer import PerformanceAnalyzer
from shared.prompts.loader import PromptLoader
from shared.repositories.student_repository import StudentRepository
from shared.utils.constants import LOW_CONFIDENCE, NO_STUDENT_CONFIDENCE, PARTIAL_CONFIDENCE
from shared.utils.formatting import format_percent_trend

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent / "prompts" / "templates"

# Used when the material_constraints table has no active rows
FALLBACK_MATERIAL_CONSTRAINTS = [
    "NEVER require cutting, laminating, or advance preparation",
    "NEVER require apps, websites, or technology beyond printing",
    "NEVER require physical manipulatives, dice, spinners, or cards",
    "NEVER require movement around the room or special setup",
    "ALL materials must be included directly on the worksheet",
    "ONLY assume access to: printer, paper, pencils, crayons, student desks",
]

SUBJECT_GUIDANCE_TEMPLATES = {
    "math": "math_guidance",
    "mathematics": "math_guidance",
    "ela": "ela_guidance",
    "reading": "ela_guidance",
    "english": "ela_guidance",
    "phonics": "ela_guidance",
    "writing": "writing_guidance",
}

# (label, pattern) pairs; labels are what a violation reports
FORBIDDEN_OUTPUT_PATTERNS = [
    ("cut\\s+out", re.compile(r"cut\s+out", re.IGNORECASE)),
    ("scissors", re.compile(r"scissors", re.IGNORECASE)),
    ("laminate", re.compile(r"laminate", re.IGNORECASE)),
    ("dice", re.compile(r"dice", re.IGNORECASE)),
    ("spinner", re.compile(r"spinner", re.IGNORECASE)),
    ("manipulatives", re.compile(r"manipulatives", re.IGNORECASE)),
    ("app", re.compile(r"\bapps?\b", re.IGNORECASE)),
    ("website", re.compile(r"website", re.IGNORECASE)),
    ("stand\\s+up", re.compile(r"stand\s+up", re.IGNORECASE)),
    ("walk\\s+around", re.compile(r"walk\s+around", re.IGNORECASE)),
    ("move\\s+to", re.compile(r"move\s+to", re.IGNORECASE)),
]
REQUIRED_OUTPUT_WORDS = ["worksheet", "print", "included"]


class PromptAssembler:
    """Turns a PromptContext into the system + user prompt sent to the model."""

    def __init__(
        self,
        db: Session,
        registry: Optional[AssessmentRegistry] = None,
        analyzer: Optional[PerformanceAnalyzer] = None,
    ):
        self.db = db
        self.registry = registry or AssessmentRegistry(db)
        self.analyzer = analyzer or PerformanceAnalyzer(db)
        self.student_repo = StudentRepository(db)
        self.constraint_repo = MaterialConstraintRepository(db)
        self.loader = PromptLoader(PROMPTS_DIR)
        self._material_constraints: List[str] = []

    @property
    def material_constraints(self) -> List[str]:
        """Active constraint descriptions, or the fallback rules when none are configured."""
        if not self._material_constraints:
            rows = self.constraint_repo.get_active()
            if rows:
                self._material_constraints = [row.description for row in rows]
            else:
                self._material_constraints = list(FALLBACK_MATERIAL_CONSTRAINTS)
        return self._material_constraints

    def assemble_prompt(self, context: PromptContext) -> AssembledPrompt:
        """
        Build the full prompt for a lesson.

        Args:
            context: Students, lesson parameters and the data collected for them

        Returns:
            AssembledPrompt with system/user prompts, mean data confidence and
            the list of data points the prompt draws on
        """
        data_used: List[str] = []
        system_prompt = self.build_system_prompt(context.lesson_type, context.subject)

        if context.lesson_type == "group":
            user_prompt = self._build_group_prompt(context, data_used)
        else:
            user_prompt = self._build_individual_prompt(context, data_used)

        confidences = [
            self.registry.calculate_data_confidence(context.assessments.get(student_id, []))
            for student_id in context.student_ids
        ]
        confidence = sum(confidences) / len(confidences) if confidences else NO_STUDENT_CONFIDENCE

        logger.info(json.dumps({
            "step": "PROMPT_ASSEMBLED",
            "lesson_type": context.lesson_type,
            "subject": context.subject,
            "student_count": len(context.student_ids),
            "confidence": round(confidence, 3),
            "data_points": len(data_used),
        }))
        return AssembledPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            confidence=confidence,
            data_used=data_used,
        )

    def build_system_prompt(self, lesson_type: str, subject: Optional[str] = None) -> str:
        subject_guidance = ""
        template = SUBJECT_GUIDANCE_TEMPLATES.get((subject or "").lower())
        if template:
            subject_guidance = "\n" + self.loader.load_template(template)

        return self.loader.render("system_prompt", {
            "lesson_type": lesson_type,
            "constraints": "\n".join(f"- {c}" for c in self.material_constraints),
            "subject_guidance": subject_guidance,
            "materials_heading": (
                "Differentiated Materials for Each Student"
                if lesson_type == "group" else "Student Materials"
            ),
        }).rstrip("\n")

    def _build_group_prompt(self, context: PromptContext, data_used: List[str]) -> str:
        prompt = (
            f"Create a {context.duration}-minute {context.subject} lesson "
            f"for a group of {len(context.student_ids)} students.\n\n"
        )

        grade_levels = self.student_repo.get_grade_levels(context.student_ids)
        prompt += "STUDENT PROFILES:\n\n"
        for number, student_id in enumerate(context.student_ids, start=1):
            prompt += self._build_student_profile(
                student_id, number, context, data_used, grade_levels.get(student_id)
            ) + "\n"

        compatibility = self.analyzer.get_group_compatibility(context.student_ids)
        strategy = compatibility.grouping_strategy or "Mixed-ability grouping with peer support"
        prompt += f"\nGROUPING STRATEGY: {strategy}\n"

        individual_minutes = max(0, round(context.duration - 10))
        prompt += "\n" + self.loader.render("group_structure", {"individual_minutes": individual_minutes})

        prompt += self._focus_skills(context)
        prompt += "\nGenerate the complete lesson with all differentiated materials."
        return prompt

    def _build_individual_prompt(self, context: PromptContext, data_used: List[str]) -> str:
        student_id = context.student_ids[0]
        prompt = f"Create a {context.duration}-minute individual {context.subject} lesson.\n\n"

        grade_level = self.student_repo.get_grade_levels([student_id]).get(student_id)
        prompt += self._build_student_profile(student_id, 1, context, data_used, grade_level)

        duration = context.duration
        prompt += "\n\n" + self.loader.render("individual_progression", {
            "warmup_minutes": int(duration * 0.15),
            "guided_minutes": int(duration * 0.3),
            "independent_minutes": int(duration * 0.4),
            "assessment_minutes": int(duration * 0.15),
        })

        adjustment = context.adjustments.get(student_id)
        if adjustment:
            changes = adjustment.specific_changes.model_dump(by_alias=True, exclude_none=True)
            prompt += (
                "\nPERFORMANCE-BASED ADJUSTMENTS:\n"
                f"- Adjustment Type: {adjustment.type}\n"
                f"- Reason: {adjustment.reason}\n"
                f"- Specific Changes: {json.dumps(changes, indent=2)}\n"
            )
            data_used.append(f"Performance adjustment: {adjustment.type}")

        prompt += self._focus_skills(context)
        prompt += "\nGenerate the complete lesson with all materials embedded in the worksheet."
        return prompt

    @staticmethod
    def _focus_skills(context: PromptContext) -> str:
        if not context.focus_skills:
            return ""
        return f"\nFOCUS SKILLS: {', '.join(context.focus_skills)}\n"

    def _build_student_profile(
        self,
        student_id: str,
        number: int,
        context: PromptContext,
        data_used: List[str],
        grade_level: Optional[str],
    ) -> str:
        """Describe one student by reference number, never by name."""
        assessments = context.assessments.get(student_id, [])
        performance = context.performance.get(student_id, [])

        profile = f"STUDENT {number}:\n- ID Reference: Student{number}\n"
        if grade_level:
            profile += f"- Grade Level: {grade_level}\n"
            data_used.append("grade_level")

        if assessments:
            profile += "\nAvailable Data:\n"
            for assessment in assessments:
                interpreted = self.registry.interpret_assessment_for_prompt(
                    assessment.assessment_type, assessment.data
                )
                for key, label in (("pacing", "Pacing"), ("complexity", "Complexity"), ("supports", "Supports")):
                    if interpreted.get(key):
                        profile += f"- {label}: {interpreted[key]}\n"
                        data_used.append(f"{assessment.assessment_type}: {key}")
        else:
            profile += "- Using grade-level baseline (no assessment data available)\n"
            profile += "- Include multiple difficulty options for teacher selection\n"
            data_used.append("grade-level baseline")

        subject_perf = next((p for p in performance if p.subject == context.subject), None)
        if subject_perf:
            profile += "\nRecent Performance:\n"
            profile += f"- Accuracy Trend: {format_percent_trend(subject_perf.recent_accuracy)}\n"
            profile += f"- Trajectory: {subject_perf.trajectory}\n"
            if subject_perf.error_patterns:
                errors = ", ".join(p.type for p in subject_perf.error_patterns[:2])
                profile += f"- Common Errors: {errors}\n"
                data_used.append("error patterns")
            data_used.append("performance history")

        iep = next((a for a in assessments if a.assessment_type == "iep_goals"), None)
        if iep and isinstance(iep.data, list):
            subject = context.subject.lower()
            relevant = [goal for goal in iep.data if isinstance(goal, str) and subject in goal.lower()]
            if relevant:
                profile += "\nIEP Goals:\n" + "".join(f"- {goal}\n" for goal in relevant)
                data_used.append("IEP goals")

        return profile

    @staticmethod
    def validate_prompt_output(output: str) -> PromptValidation:
        """Flag forbidden-material phrases and missing zero-prep wording in model output."""
        violations = [
            f"Contains forbidden material: {label}"
            for label, pattern in FORBIDDEN_OUTPUT_PATTERNS
            if pattern.search(output)
        ]
        lowered = output.lower()
        violations += [
            f"Missing required element: {word}"
            for word in REQUIRED_OUTPUT_WORDS
            if word not in lowered
        ]
        return PromptValidation(valid=not violations, violations=violations)

    def generate_data_confidence_report(self, context: PromptContext) -> DataConfidenceReport:
        """
        Per-student confidence, what data is missing, and a recommendation tier.
        """
        by_student = {}
        missing_data = {}
        for student_id in context.student_ids:
            assessments = context.assessments.get(student_id, [])
            by_student[student_id] = self.registry.calculate_data_confidence(assessments)

            present = {a.assessment_type for a in assessments}
            missing = []
            if "reading_level" not in present:
                missing.append("Reading level assessment")
            if "iep_goals" not in present:
                missing.append("IEP goals")
            if context.subject == "math" and "math_computation" not in present:
                missing.append("Math computation assessment")
            if missing:
                missing_data[student_id] = missing

        overall = sum(by_student.values()) / len(by_student) if by_student else 0.0

        if overall < LOW_CONFIDENCE:
            recommendations = [
                "Minimal data available - using grade-level baselines",
                "Collect assessment data to improve personalization",
            ]
        elif overall < PARTIAL_CONFIDENCE:
            recommendations = [
                "Partial data available - some personalization applied",
                "Additional assessments would improve accuracy",
            ]
        else:
            recommendations = ["Good data coverage - high confidence in personalization"]

        return DataConfidenceReport(
            overall=overall,
            by_student=by_student,
            missing_data=missing_data,
            recommendations=recommendations,
        )
