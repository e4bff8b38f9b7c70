"""
API routes for AI lesson generation and the adjustment queue.

Every endpoint acts for the provider named in the X-Provider-Id header.
"""
import json
import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from database import get_db
from features.ai_lessons.models.domain import (
    AssessmentTypeCreate,
    AssessmentTypeDefinition,
    GeneratedLesson,
    LessonGenerationRequest,
    QueuedAdjustment,
)
from features.ai_lessons.models.schemas import (
    AdjustmentActionRequest,
    AdjustmentActionResponse,
    AdjustmentBatchResponse,
    AdjustmentItem,
    AdjustmentSummaryResponse,
    GenerateLessonRequest,
    GenerateLessonResponse,
    HighPriorityAdjustmentsResponse,
    LessonSummaryResponse,
    PendingAdjustmentsResponse,
    PendingSummary,
    RecentLessonResponse,
    RegenerateLessonRequest,
    StudentLessonDataResponse,
    SubjectSummaryResponse,
    SubmissionRequest,
    SubmissionResponse,
    TeacherGuidanceResponse,
    WorksheetRef,
)
from features.ai_lessons.services.adjustment_queue import AdjustmentQueueManager
from features.ai_lessons.services.assessment_registry import AssessmentRegistry
from features.ai_lessons.services.lesson_generator import LessonGenerator
from features.ai_lessons.services.performance_analyzer import PerformanceAnalyzer
from shared.repositories.student_repository import StudentRepository
from shared.utils.constants import ADJUSTMENTS_APPLIED_PER_LESSON
from shared.utils.exceptions import (
    AdjustmentAccessDeniedException,
    NoStudentsForProviderException,
    SpeddyException,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai-lessons", tags=["ai-lessons"])

PENDING_VIEW_LIMIT = 20
HIGH_PRIORITY_BATCHES = 5
TOP_ADJUSTMENTS_PER_BATCH = 3


# ===== Dependencies =====

def get_provider_id(x_provider_id: Optional[str] = Header(None)) -> str:
    """The calling provider's id; requests without one are rejected."""
    if not x_provider_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return x_provider_id


def get_lesson_generator(db: Session = Depends(get_db)) -> LessonGenerator:
    return LessonGenerator(db)


def _provider_student_ids(db: Session, provider_id: str) -> List[str]:
    student_ids = StudentRepository(db).get_ids_for_provider(provider_id)
    if not student_ids:
        raise NoStudentsForProviderException(provider_id)
    return student_ids


def _internal_error(action: str, error: Exception) -> HTTPException:
    logger.exception(f"Failed to {action}: {error}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {str(error)}",
    )


def _adjustment_item(adjustment: QueuedAdjustment) -> AdjustmentItem:
    return AdjustmentItem(
        id=adjustment.id,
        student_id=adjustment.student_id,
        subject=adjustment.subject,
        type=adjustment.adjustment_type,
        priority=adjustment.priority,
        details=adjustment.adjustment_details,
        created_at=adjustment.created_at,
    )


def _lesson_summary(lesson: GeneratedLesson, student_count: int) -> LessonSummaryResponse:
    guidance = lesson.content.teacher_guidance
    return LessonSummaryResponse(
        id=lesson.id,
        differentiated_lesson_id=lesson.differentiated_lesson_id,
        type=lesson.lesson_type,
        title=lesson.content.title,
        objectives=lesson.content.objectives,
        duration=lesson.content.duration,
        materials=lesson.content.materials,
        student_count=student_count,
        data_confidence=lesson.data_confidence,
        worksheets=[
            WorksheetRef(
                student_id=student_id,
                worksheet_id=worksheet_id,
                qr_code=lesson.qr_codes.get(student_id),
            )
            for student_id, worksheet_id in lesson.worksheet_ids.items()
        ],
        teacher_guidance=TeacherGuidanceResponse(
            overview=guidance.overview,
            check_in_priorities=guidance.check_in_priorities,
            differentiation_notes=guidance.differentiation_notes,
            expected_completion_times=guidance.expected_completion_times,
            support_levels=guidance.support_levels,
        ),
    )


# ===== Lesson generation =====

@router.post("/generate", response_model=GenerateLessonResponse)
def generate_lesson(
    request: GenerateLessonRequest,
    provider_id: str = Depends(get_provider_id),
    generator: LessonGenerator = Depends(get_lesson_generator),
    db: Session = Depends(get_db),
):
    """
    Generate a lesson for one student or a group.

    Pending adjustments that the lesson incorporates (up to 5 per student for
    the subject) are marked processed afterwards.

    Raises:
        HTTPException: 400 on invalid input, 503 when the AI service fails
    """
    try:
        lesson_request = LessonGenerationRequest(
            student_ids=request.student_ids,
            lesson_type=request.lesson_type,
            subject=request.subject,
            duration=request.duration,
            focus_skills=request.focus_skills,
            teacher_id=provider_id,
        )
        generator.validate_request(lesson_request)
        lesson = generator.generate_lesson(lesson_request)

        queue = AdjustmentQueueManager(db)
        for student_id in request.student_ids:
            pending = queue.get_pending_adjustments(
                student_id, request.subject, ADJUSTMENTS_APPLIED_PER_LESSON
            )
            if pending:
                queue.process_batch([a.id for a in pending])

        return GenerateLessonResponse(lesson=_lesson_summary(lesson, len(request.student_ids)))
    except SpeddyException as e:
        raise e.to_http_exception()
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("generate lesson", e)


@router.get("/generate", response_model=StudentLessonDataResponse)
def get_student_lesson_data(
    student_id: str = Query(..., alias="studentId"),
    provider_id: str = Depends(get_provider_id),
    generator: LessonGenerator = Depends(get_lesson_generator),
    db: Session = Depends(get_db),
):
    """Adjustment summary and recent lessons for a student."""
    try:
        summary = AdjustmentQueueManager(db).get_student_adjustment_summary(student_id)
        recent = generator.get_recent_lessons(student_id, limit=5)

        return StudentLessonDataResponse(
            student_id=student_id,
            adjustment_summary=AdjustmentSummaryResponse(
                pending=summary.pending,
                processed=summary.processed,
                by_subject=[
                    SubjectSummaryResponse(
                        subject=subject,
                        pending_count=len(data.pending),
                        trend=data.trend,
                        latest_adjustment=data.pending[0].adjustment_type if data.pending else None,
                    )
                    for subject, data in summary.by_subject.items()
                ],
                recommendations=summary.recommendations,
            ),
            recent_lessons=[
                RecentLessonResponse(
                    id=lesson.differentiated_lesson_id,
                    title=lesson.title,
                    type=lesson.lesson_type,
                    created_at=lesson.created_at,
                    data_confidence=lesson.data_confidence,
                )
                for lesson in recent
            ],
        )
    except SpeddyException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("fetch lesson data", e)


@router.post("/lessons/{lesson_id}/regenerate", response_model=GenerateLessonResponse)
def regenerate_lesson(
    lesson_id: str,
    request: RegenerateLessonRequest,
    provider_id: str = Depends(get_provider_id),
    generator: LessonGenerator = Depends(get_lesson_generator),
):
    """Regenerate a stored (differentiated) lesson with teacher-supplied adjustments."""
    try:
        lesson = generator.regenerate_lesson_with_adjustments(lesson_id, request.adjustments)
        return GenerateLessonResponse(lesson=_lesson_summary(lesson, len(lesson.worksheet_ids)))
    except SpeddyException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("regenerate lesson", e)


# ===== Adjustments =====

@router.get(
    "/adjustments",
    response_model=Union[PendingAdjustmentsResponse, HighPriorityAdjustmentsResponse],
)
def get_adjustments(
    view: str = "pending",
    provider_id: str = Depends(get_provider_id),
    db: Session = Depends(get_db),
):
    """
    Pending adjustments for the provider's students.

    Args:
        view: "pending" (top 20 by priority with totals) or "high-priority"
            (per-student batches)
    """
    try:
        queue = AdjustmentQueueManager(db)
        student_ids = StudentRepository(db).get_ids_for_provider(provider_id)

        if view == "high-priority":
            batches = queue.get_high_priority_adjustments(student_ids, HIGH_PRIORITY_BATCHES)
            return HighPriorityAdjustmentsResponse(batches=[
                AdjustmentBatchResponse(
                    student_id=batch.student_id,
                    adjustment_count=len(batch.adjustments),
                    recommended_action=batch.recommended_action,
                    next_lesson_modifications=batch.next_lesson_modifications,
                    top_adjustments=[
                        _adjustment_item(a) for a in batch.adjustments[:TOP_ADJUSTMENTS_PER_BATCH]
                    ],
                )
                for batch in batches
            ])

        if not student_ids:
            return PendingAdjustmentsResponse()

        pending: List[QueuedAdjustment] = []
        for student_id in student_ids:
            pending.extend(queue.get_pending_adjustments(student_id))
        pending.sort(key=lambda a: a.priority, reverse=True)

        by_type = {}
        by_subject = {}
        for adjustment in pending:
            by_type[adjustment.adjustment_type] = by_type.get(adjustment.adjustment_type, 0) + 1
            by_subject[adjustment.subject] = by_subject.get(adjustment.subject, 0) + 1

        return PendingAdjustmentsResponse(
            adjustments=[_adjustment_item(a) for a in pending[:PENDING_VIEW_LIMIT]],
            summary=PendingSummary(total=len(pending), by_type=by_type, by_subject=by_subject),
        )
    except SpeddyException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("fetch adjustments", e)


@router.post("/adjustments", response_model=AdjustmentActionResponse, response_model_exclude_none=True)
def act_on_adjustments(
    request: AdjustmentActionRequest,
    provider_id: str = Depends(get_provider_id),
    db: Session = Depends(get_db),
):
    """
    Process or clean up the provider's adjustments.

    `process` requires every id to belong to one of the provider's students
    (403 otherwise). `cleanup` deletes processed rows older than `daysOld` days.
    """
    try:
        queue = AdjustmentQueueManager(db)

        if request.action == "process":
            if request.adjustment_ids is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Adjustment IDs are required",
                )
            student_ids = _provider_student_ids(db, provider_id)
            requested = list(dict.fromkeys(request.adjustment_ids))
            authorized = queue.repo.filter_ids_for_students(requested, student_ids)
            if len(authorized) != len(requested):
                raise AdjustmentAccessDeniedException(len(requested), len(authorized))

            processed = queue.process_batch(authorized)
            return AdjustmentActionResponse(
                processed=processed,
                message=f"Processed {processed} adjustments",
            )

        if request.action == "cleanup":
            student_ids = _provider_student_ids(db, provider_id)
            deleted = queue.cleanup_old_processed_adjustments(request.days_old or 30, student_ids)
            return AdjustmentActionResponse(
                deleted=deleted,
                message=f"Cleaned up {deleted} old adjustments for your students",
            )

        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
    except SpeddyException as e:
        raise e.to_http_exception()
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("process adjustments", e)


# ===== Worksheet submissions =====

@router.post("/submissions", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
def record_submission(
    request: SubmissionRequest,
    provider_id: str = Depends(get_provider_id),
    db: Session = Depends(get_db),
):
    """Record a graded worksheet and queue the resulting adjustment."""
    try:
        adjustment = PerformanceAnalyzer(db).record_worksheet_submission(
            worksheet_id=request.worksheet_id,
            accuracy_percentage=request.accuracy_percentage,
            student_responses=request.student_responses,
            skills_assessed=request.skills_assessed,
            ai_analysis=request.ai_analysis,
        )
        logger.info(json.dumps({
            "step": "SUBMISSION_API",
            "provider_id": provider_id,
            "adjustment_id": adjustment.id,
        }))
        return SubmissionResponse(adjustment=_adjustment_item(adjustment))
    except SpeddyException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("record submission", e)


# ===== Assessment types =====

@router.get("/assessment-types", response_model=List[AssessmentTypeDefinition])
def list_assessment_types(
    provider_id: str = Depends(get_provider_id),
    db: Session = Depends(get_db),
):
    """All registered assessment types."""
    try:
        return AssessmentRegistry(db).get_all_assessment_types()
    except SpeddyException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("list assessment types", e)


@router.post(
    "/assessment-types",
    response_model=AssessmentTypeDefinition,
    status_code=status.HTTP_201_CREATED,
)
def register_assessment_type(
    request: AssessmentTypeCreate,
    provider_id: str = Depends(get_provider_id),
    db: Session = Depends(get_db),
):
    """Register a new assessment type (409 when the name is taken)."""
    try:
        return AssessmentRegistry(db).register_new_assessment_type(request)
    except SpeddyException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("register assessment type", e)
