"""Domain models for the AI lesson pipeline."""
from datetime import datetime
from typing import List, Dict, Any, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AssessmentCategory = Literal["academic", "cognitive", "behavioral", "iep"]
Trajectory = Literal["improving", "stable", "declining"]
AdjustmentType = Literal["advance", "maintain", "reteach", "prerequisite"]
AdjustmentTrend = Literal["improving", "stable", "struggling"]
LessonType = Literal["individual", "group"]
SupportLevel = Literal["independent", "minimal", "moderate", "maximum"]


class CamelModel(BaseModel):
    """Base for payloads exchanged with the model and stored as JSON (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ===== Assessment Registry =====

class PromptFragments(BaseModel):
    """Prompt text templates; `{key}` placeholders are filled from assessment data."""
    pacing: Optional[str] = None
    complexity: Optional[str] = None
    supports: Optional[str] = None


class InterpretationRules(BaseModel):
    use_for: List[str] = Field(default_factory=list)
    weight: Literal["high", "medium", "low"] = "medium"


class AssessmentTypeCreate(BaseModel):
    """A new assessment kind to register."""
    name: str = Field(..., min_length=1)
    category: AssessmentCategory
    data_schema: Dict[str, Any]
    interpretation_rules: InterpretationRules = Field(default_factory=InterpretationRules)
    prompt_fragments: PromptFragments = Field(default_factory=PromptFragments)
    confidence_weight: float = Field(1.0, ge=0.0, le=1.0)


class AssessmentTypeDefinition(AssessmentTypeCreate):
    """A registered assessment kind."""
    id: str


class StudentAssessmentData(BaseModel):
    """One piece of student data in the registry's uniform shape."""
    student_id: str
    assessment_type: str
    data: Any
    collected_at: datetime
    confidence: Optional[float] = None


# ===== Performance Analyzer =====

class ErrorPattern(BaseModel):
    type: str
    frequency: int
    examples: List[Any] = Field(default_factory=list)
    last_occurrence: Optional[datetime] = None


class PerformanceData(BaseModel):
    """Per-subject performance summary for one student."""
    student_id: str
    subject: str
    recent_accuracy: List[float] = Field(default_factory=list)  # most recent first
    error_patterns: List[ErrorPattern] = Field(default_factory=list)
    current_level: float = 0.0
    trajectory: Trajectory = "stable"
    confidence_score: float = 0.5


class SpecificChanges(CamelModel):
    difficulty: Optional[str] = None
    scaffolding: Optional[str] = None
    focus_areas: Optional[List[str]] = None
    practice_type: Optional[str] = None


class AdjustmentRecommendation(CamelModel):
    """What to change in the next lesson for one student, and why."""
    type: AdjustmentType
    reason: str
    specific_changes: SpecificChanges = Field(default_factory=SpecificChanges)
    priority: int = Field(5, ge=1, le=10)


class GroupCompatibility(BaseModel):
    compatible: bool
    reason: str
    grouping_strategy: str = ""


# ===== Prompt Assembler =====

class PromptContext(BaseModel):
    """Everything the assembler needs to build one lesson prompt."""
    student_ids: List[str]
    lesson_type: LessonType
    subject: str
    duration: int
    focus_skills: Optional[List[str]] = None
    assessments: Dict[str, List[StudentAssessmentData]] = Field(default_factory=dict)
    performance: Dict[str, List[PerformanceData]] = Field(default_factory=dict)
    adjustments: Dict[str, AdjustmentRecommendation] = Field(default_factory=dict)


class AssembledPrompt(BaseModel):
    system_prompt: str
    user_prompt: str
    confidence: float
    data_used: List[str] = Field(default_factory=list)


class PromptValidation(BaseModel):
    valid: bool
    violations: List[str] = Field(default_factory=list)


class DataConfidenceReport(BaseModel):
    overall: float
    by_student: Dict[str, float] = Field(default_factory=dict)
    missing_data: Dict[str, List[str]] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)


# ===== Lesson Generator =====

class LessonGenerationRequest(BaseModel):
    student_ids: List[str]
    lesson_type: str
    subject: str
    duration: Optional[int] = None
    focus_skills: Optional[List[str]] = None
    teacher_id: str
    manual_adjustments: Optional[Dict[str, AdjustmentRecommendation]] = None


class WorksheetContent(CamelModel):
    title: str = ""
    instructions: str = ""
    problems: List[Dict[str, Any]] = Field(default_factory=list)
    visual_supports: List[Dict[str, Any]] = Field(default_factory=list)
    exit_ticket: Optional[Dict[str, Any]] = None


class StudentMaterial(CamelModel):
    student_id: str
    worksheet_content: WorksheetContent = Field(default_factory=WorksheetContent)
    answer_key: List[Dict[str, Any]] = Field(default_factory=list)
    accommodations: List[str] = Field(default_factory=list)


class DifferentiationData(CamelModel):
    level: str = ""
    modifications: List[str] = Field(default_factory=list)
    scaffolds: List[str] = Field(default_factory=list)
    data_used: List[str] = Field(default_factory=list)


class TeacherGuidance(CamelModel):
    overview: str = "AI-generated lesson with differentiated materials"
    differentiation_notes: Dict[str, str] = Field(default_factory=dict)
    check_in_priorities: List[str] = Field(default_factory=list)
    expected_completion_times: Dict[str, float] = Field(default_factory=dict)
    support_levels: Dict[str, str] = Field(default_factory=dict)


class LessonContent(CamelModel):
    title: str
    objectives: List[str]
    duration: int
    materials: str
    teacher_guidance: TeacherGuidance
    student_materials: List[StudentMaterial]


class ParsedLesson(CamelModel):
    """Structured lesson recovered from the model's reply."""
    lesson_type: LessonType
    content: LessonContent
    differentiation_map: Dict[str, DifferentiationData] = Field(default_factory=dict)
    data_confidence: float = 0.7


class GeneratedLesson(ParsedLesson):
    """A persisted lesson with its worksheets."""
    id: str
    differentiated_lesson_id: str
    worksheet_ids: Dict[str, str] = Field(default_factory=dict)
    qr_codes: Dict[str, str] = Field(default_factory=dict)


class RecentLesson(BaseModel):
    differentiated_lesson_id: str
    lesson_id: str
    lesson_type: str
    title: str
    subject: Optional[str] = None
    student_ids: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    data_confidence: float = 0.0


# ===== Adjustment Queue =====

class QueuedAdjustment(BaseModel):
    id: str
    student_id: str
    worksheet_submission_id: Optional[str] = None
    subject: str
    adjustment_type: AdjustmentType
    adjustment_details: Dict[str, Any] = Field(default_factory=dict)
    priority: int
    processed: bool = False
    processed_at: Optional[datetime] = None
    created_at: datetime


class LessonModification(BaseModel):
    subject: str
    changes: List[str]


class AdjustmentBatch(BaseModel):
    """Pending adjustments for one student with the resulting next-lesson plan."""
    student_id: str
    adjustments: List[QueuedAdjustment]
    recommended_action: str
    next_lesson_modifications: List[LessonModification] = Field(default_factory=list)


class SubjectAdjustmentSummary(BaseModel):
    pending: List[QueuedAdjustment] = Field(default_factory=list)
    trend: AdjustmentTrend = "stable"


class StudentAdjustmentSummary(BaseModel):
    pending: int
    processed: int
    by_subject: Dict[str, SubjectAdjustmentSummary] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)
