"""
Pydantic request/response schemas for the AI lessons API.

Payloads are camelCase on the wire.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from features.ai_lessons.models.domain import (
    AdjustmentRecommendation,
    CamelModel,
    LessonModification,
)


# ===== Lesson generation =====

class GenerateLessonRequest(CamelModel):
    """Body of POST /generate. Field checks happen in the generator so they surface as 400s."""
    student_ids: List[str] = Field(default_factory=list)
    lesson_type: str = ""
    subject: str = ""
    duration: Optional[int] = Field(None, gt=0)
    focus_skills: Optional[List[str]] = None


class RegenerateLessonRequest(CamelModel):
    adjustments: Dict[str, AdjustmentRecommendation] = Field(default_factory=dict)


class WorksheetRef(CamelModel):
    student_id: str
    worksheet_id: str
    qr_code: Optional[str] = None


class TeacherGuidanceResponse(CamelModel):
    overview: str
    check_in_priorities: List[str] = Field(default_factory=list)
    differentiation_notes: Dict[str, str] = Field(default_factory=dict)
    expected_completion_times: Dict[str, float] = Field(default_factory=dict)
    support_levels: Dict[str, str] = Field(default_factory=dict)


class LessonSummaryResponse(CamelModel):
    id: str
    differentiated_lesson_id: str
    type: str
    title: str
    objectives: List[str]
    duration: int
    materials: str
    student_count: int
    data_confidence: float
    worksheets: List[WorksheetRef] = Field(default_factory=list)
    teacher_guidance: TeacherGuidanceResponse


class GenerateLessonResponse(CamelModel):
    success: bool = True
    lesson: LessonSummaryResponse


class SubjectSummaryResponse(CamelModel):
    subject: str
    pending_count: int
    trend: str
    latest_adjustment: Optional[str] = None


class AdjustmentSummaryResponse(CamelModel):
    pending: int
    processed: int
    by_subject: List[SubjectSummaryResponse] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class RecentLessonResponse(CamelModel):
    id: str
    title: str
    type: str
    created_at: Optional[datetime] = None
    data_confidence: float = 0.0


class StudentLessonDataResponse(CamelModel):
    student_id: str
    adjustment_summary: AdjustmentSummaryResponse
    recent_lessons: List[RecentLessonResponse] = Field(default_factory=list)


# ===== Adjustments =====

class AdjustmentItem(CamelModel):
    id: str
    student_id: str
    subject: str
    type: str
    priority: int
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class PendingSummary(CamelModel):
    total: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_subject: Dict[str, int] = Field(default_factory=dict)


class PendingAdjustmentsResponse(CamelModel):
    view: Literal["pending"] = "pending"
    adjustments: List[AdjustmentItem] = Field(default_factory=list)
    summary: PendingSummary = Field(default_factory=PendingSummary)


class AdjustmentBatchResponse(CamelModel):
    student_id: str
    adjustment_count: int
    recommended_action: str
    next_lesson_modifications: List[LessonModification] = Field(default_factory=list)
    top_adjustments: List[AdjustmentItem] = Field(default_factory=list)


class HighPriorityAdjustmentsResponse(CamelModel):
    view: Literal["high-priority"] = "high-priority"
    batches: List[AdjustmentBatchResponse] = Field(default_factory=list)


class AdjustmentActionRequest(CamelModel):
    action: str
    adjustment_ids: Optional[List[str]] = None
    days_old: Optional[int] = Field(None, gt=0)


class AdjustmentActionResponse(CamelModel):
    success: bool = True
    processed: Optional[int] = None
    deleted: Optional[int] = None
    message: str


# ===== Worksheet submissions =====

class SubmissionRequest(CamelModel):
    worksheet_id: str
    accuracy_percentage: float = Field(..., ge=0, le=100)
    student_responses: Optional[List[Dict[str, Any]]] = None
    skills_assessed: Optional[Any] = None
    ai_analysis: Optional[str] = None


class SubmissionResponse(CamelModel):
    success: bool = True
    adjustment: AdjustmentItem
