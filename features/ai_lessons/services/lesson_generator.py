"""
Lesson Generator.

Orchestrates one lesson: collect student data, assemble the prompt, make a
single LLM call, parse the reply, persist the lesson and create a worksheet
per student.
"""
import json
import logging
import time
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from features.ai_lessons.models.domain import (
    AdjustmentRecommendation,
    AssembledPrompt,
    DataConfidenceReport,
    GeneratedLesson,
    LessonGenerationRequest,
    ParsedLesson,
    PromptContext,
    RecentLesson,
)
from features.ai_lessons.repositories.lesson_repository import LessonRepository
from features.ai_lessons.services.assessment_registry import AssessmentRegistry
from features.ai_lessons.services.lesson_parser import parse_lesson_response
from features.ai_lessons.services.performance_analyzer import PerformanceAnalyzer
from features.ai_lessons.services.prompt_assembler import PromptAssembler
from features.ai_lessons.services.worksheet_service import WorksheetService
from shared.services.llm_config_service import LLMConfigService
from shared.services.llm_service import LLMService, LLMServiceError
from shared.utils.constants import LESSON_TYPES, MAX_GROUP_SIZE, MIN_GROUP_SIZE
from shared.utils.exceptions import (
    DatabaseException,
    InvalidLessonRequestException,
    LLMProviderException,
    LessonNotFoundException,
)
from shared.utils.json_fields import load_json

logger = logging.getLogger(__name__)

LLM_COMPONENT_KEY = "lesson_generator"

MATERIALS_INCLUDED = {
    "worksheets": True,
    "visualSupports": True,
    "exitTickets": True,
    "answerKeys": True,
}
WHOLE_GROUP_COMPONENTS = {
    "opening": "Shared introduction",
    "closing": "Group share out",
}


class LessonGenerator:
    """
    Generates differentiated lessons for one or more students.

    The LLM service is built lazily from the `lesson_generator` llm_config row
    unless one is injected.
    """

    def __init__(
        self,
        db: Session,
        llm_service: Optional[LLMService] = None,
        registry: Optional[AssessmentRegistry] = None,
        analyzer: Optional[PerformanceAnalyzer] = None,
    ):
        self.db = db
        self.settings = get_settings()
        self.registry = registry or AssessmentRegistry(db)
        self.analyzer = analyzer or PerformanceAnalyzer(db)
        self.assembler = PromptAssembler(db, self.registry, self.analyzer)
        self.lesson_repo = LessonRepository(db)
        self.worksheets = WorksheetService(db)
        self._llm_service = llm_service

    @property
    def llm_service(self) -> LLMService:
        if self._llm_service is None:
            self._llm_service = LLMConfigService(self.db).build_llm_service(LLM_COMPONENT_KEY)
        return self._llm_service

    @staticmethod
    def validate_request(request: LessonGenerationRequest):
        """
        Reject malformed lesson requests.

        Raises:
            InvalidLessonRequestException: With the first problem found
        """
        if not request.student_ids:
            raise InvalidLessonRequestException("At least one student ID is required")
        if request.lesson_type not in LESSON_TYPES:
            raise InvalidLessonRequestException('Invalid lesson type. Must be "individual" or "group"')
        if request.lesson_type == "group" and not (
            MIN_GROUP_SIZE <= len(request.student_ids) <= MAX_GROUP_SIZE
        ):
            raise InvalidLessonRequestException("Group lessons require 2-6 students")
        if not request.subject or not request.subject.strip():
            raise InvalidLessonRequestException("Subject is required")

    def generate_lesson(self, request: LessonGenerationRequest) -> GeneratedLesson:
        """
        Generate, persist and return a lesson.

        Args:
            request: Students, lesson type, subject and optional manual adjustments

        Returns:
            GeneratedLesson with worksheet ids and QR URLs per student

        Raises:
            InvalidLessonRequestException: Request failed validation
            LLMConfigNotFoundError: No llm_config row for lesson_generator
            LLMProviderException: The model call failed
            DatabaseException: Persisting the lesson failed
        """
        self.validate_request(request)
        start_time = time.time()
        duration = request.duration or self.settings.lesson_default_duration

        logger.info(json.dumps({
            "step": "LESSON_GENERATION",
            "status": "starting",
            "lesson_type": request.lesson_type,
            "subject": request.subject,
            "student_count": len(request.student_ids),
            "manual_adjustments": bool(request.manual_adjustments),
        }))

        context = self._build_context(request, duration)
        prompt = self.assembler.assemble_prompt(context)
        report = self.assembler.generate_data_confidence_report(context)

        raw_response = self._call_llm(prompt)
        parsed = parse_lesson_response(raw_response, request)

        validation = self.assembler.validate_prompt_output(raw_response)
        if not validation.valid:
            logger.warning(json.dumps({
                "step": "LESSON_OUTPUT_VALIDATION",
                "violations": validation.violations,
            }))

        lesson = self._save_lesson(parsed, request, prompt, report, raw_response, validation.violations)

        logger.info(json.dumps({
            "step": "LESSON_GENERATION",
            "status": "complete",
            "lesson_id": lesson.id,
            "worksheets": len(lesson.worksheet_ids),
            "confidence": round(report.overall, 3),
            "duration_ms": int((time.time() - start_time) * 1000),
        }))
        return lesson

    def _build_context(self, request: LessonGenerationRequest, duration: int) -> PromptContext:
        adjustments: Dict[str, AdjustmentRecommendation] = dict(request.manual_adjustments or {})
        assessments = {}
        performance = {}

        for student_id in request.student_ids:
            assessments[student_id] = self.registry.get_student_assessments(student_id)
            performance[student_id] = self.analyzer.analyze_student_performance(
                student_id, request.subject
            )
            if student_id not in adjustments:
                recommendation = self.analyzer.get_adjustment_recommendation(student_id, request.subject)
                if recommendation:
                    adjustments[student_id] = recommendation

        return PromptContext(
            student_ids=request.student_ids,
            lesson_type=request.lesson_type,
            subject=request.subject,
            duration=duration,
            focus_skills=request.focus_skills,
            assessments=assessments,
            performance=performance,
            adjustments=adjustments,
        )

    def _call_llm(self, prompt: AssembledPrompt) -> str:
        llm = self.llm_service
        try:
            result = llm.call(
                prompt.user_prompt,
                system_prompt=prompt.system_prompt,
                json_mode=False,
                max_tokens=self.settings.lesson_max_tokens,
            )
        except LLMServiceError as e:
            logger.error(json.dumps({
                "step": "LESSON_GENERATION",
                "status": "llm_failed",
                "provider": llm.provider,
                "model": llm.model_id,
                "error": str(e),
            }))
            raise LLMProviderException(e) from e
        return result.get("output_text") or ""

    def _save_lesson(
        self,
        parsed: ParsedLesson,
        request: LessonGenerationRequest,
        prompt: AssembledPrompt,
        report: DataConfidenceReport,
        raw_response: str,
        violations: List[str],
    ) -> GeneratedLesson:
        """Persist lesson, differentiated lesson and worksheets in one transaction."""
        content = parsed.content
        try:
            lesson_row = self.lesson_repo.create_lesson(
                provider_id=request.teacher_id,
                title=content.title,
                subject=request.subject,
                content=content.model_dump(by_alias=True, mode="json"),
                duration_minutes=content.duration,
            )
            differentiated = self.lesson_repo.create_differentiated(
                lesson_id=lesson_row.id,
                lesson_type=request.lesson_type,
                student_ids=request.student_ids,
                differentiation_map={
                    student_id: data.model_dump(by_alias=True)
                    for student_id, data in parsed.differentiation_map.items()
                },
                teacher_guidance=content.teacher_guidance.model_dump(by_alias=True),
                data_confidence={
                    "overall": report.overall,
                    "byStudent": report.by_student,
                    "dataUsed": prompt.data_used,
                },
                materials_included=MATERIALS_INCLUDED,
                whole_group_components=WHOLE_GROUP_COMPONENTS if request.lesson_type == "group" else None,
                full_prompt_sent=json.dumps(prompt.model_dump(by_alias=True)),
                ai_raw_response=raw_response,
                model_used=self.llm_service.model_id,
                generation_metadata={
                    "timestamp": datetime.utcnow().isoformat(),
                    "confidence": report.overall,
                    "student_count": len(request.student_ids),
                    "lesson_type": request.lesson_type,
                    "has_manual_adjustments": bool(request.manual_adjustments),
                    "validation_violations": violations,
                },
            )

            worksheet_ids: Dict[str, str] = {}
            qr_codes: Dict[str, str] = {}
            for material in content.student_materials:
                worksheet_id, qr_url = self.worksheets.create_worksheet(
                    lesson_row.id, material.student_id, request.subject, material
                )
                worksheet_ids[material.student_id] = worksheet_id
                qr_codes[material.student_id] = qr_url

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException("save generated lesson", e) from e

        return GeneratedLesson(
            **parsed.model_dump(exclude={"data_confidence"}),
            id=lesson_row.id,
            differentiated_lesson_id=differentiated.id,
            data_confidence=report.overall,
            worksheet_ids=worksheet_ids,
            qr_codes=qr_codes,
        )

    def regenerate_lesson_with_adjustments(
        self,
        differentiated_lesson_id: str,
        adjustments: Dict[str, AdjustmentRecommendation],
    ) -> GeneratedLesson:
        """
        Generate a stored lesson again for the same students, with manual adjustments.

        Raises:
            LessonNotFoundException: No differentiated lesson with this id
        """
        original = self.lesson_repo.get_differentiated(differentiated_lesson_id)
        if not original or not original.lesson:
            raise LessonNotFoundException(differentiated_lesson_id)

        logger.info(json.dumps({
            "step": "LESSON_REGENERATION",
            "differentiated_lesson_id": differentiated_lesson_id,
            "adjusted_students": list(adjustments.keys()),
        }))

        request = LessonGenerationRequest(
            student_ids=load_json(original.student_ids_json, []),
            lesson_type=original.lesson_type,
            subject=original.lesson.subject or "reading",
            duration=original.lesson.duration_minutes,
            teacher_id=original.lesson.provider_id,
            manual_adjustments=adjustments,
        )
        return self.generate_lesson(request)

    def get_recent_lessons(self, student_id: str, limit: int = 5) -> List[RecentLesson]:
        """Most recent lessons that include the student, newest first."""
        return [
            RecentLesson(
                differentiated_lesson_id=row.id,
                lesson_id=row.lesson_id,
                lesson_type=row.lesson_type,
                title=row.lesson.title if row.lesson else "",
                subject=row.lesson.subject if row.lesson else None,
                student_ids=load_json(row.student_ids_json, []),
                created_at=row.created_at,
                data_confidence=(load_json(row.data_confidence_json, {}) or {}).get("overall") or 0.0,
            )
            for row in self.lesson_repo.get_recent_for_student(student_id, limit)
        ]
