"""SQLAlchemy ORM models for the AI lesson pipeline."""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Float, Text, DateTime, Boolean, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from shared.models.entities import Base


class AssessmentType(Base):
    """
    Registry of assessment kinds the pipeline knows how to read.

    Each row carries a JSON data schema, interpretation rules and the prompt
    fragments ({placeholder} templates) used to describe a student's result.
    """
    __tablename__ = "assessment_types"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    category = Column(String, nullable=False)  # academic, cognitive, behavioral, iep
    data_schema_json = Column(Text, nullable=False)
    interpretation_rules_json = Column(Text, nullable=False)  # {use_for: [...], weight: high|medium|low}
    prompt_fragments_json = Column(Text, nullable=False)      # {pacing, complexity, supports}
    confidence_weight = Column(Float, default=1.0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StudentPerformanceMetric(Base):
    """Aggregated performance per student per subject."""
    __tablename__ = "student_performance_metrics"

    id = Column(String, primary_key=True)
    student_id = Column(String, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    subject = Column(String, nullable=False)  # reading, math, writing, spelling, phonics
    current_level = Column(Float, nullable=True)  # grade-level equivalent, e.g. 2.5
    accuracy_trend_json = Column(Text, nullable=True)  # JSON array, most recent first
    error_patterns_json = Column(Text, nullable=True)
    last_assessment_date = Column(DateTime, nullable=True)
    confidence_score = Column(Float, default=0.5)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("student_id", "subject", name="uq_performance_student_subject"),
        Index("idx_performance_metrics_student", "student_id"),
    )


class Lesson(Base):
    """Provider-owned lesson record."""
    __tablename__ = "lessons"

    id = Column(String, primary_key=True)
    provider_id = Column(String, nullable=False)
    title = Column(String, nullable=False)
    subject = Column(String, nullable=True)
    content_json = Column(Text, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    differentiated = relationship(
        "DifferentiatedLesson", back_populates="lesson", cascade="all, delete-orphan"
    )


class DifferentiatedLesson(Base):
    """Generated lesson with per-student differentiation and the exchange that produced it."""
    __tablename__ = "differentiated_lessons"

    id = Column(String, primary_key=True)
    lesson_id = Column(String, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    lesson_type = Column(String, nullable=False)  # individual, group
    student_ids_json = Column(Text, nullable=False)  # JSON array, request order
    differentiation_map_json = Column(Text, nullable=False)
    whole_group_components_json = Column(Text, nullable=True)
    teacher_guidance_json = Column(Text, nullable=False)
    data_confidence_json = Column(Text, nullable=True)  # {overall, byStudent, dataUsed}
    materials_included_json = Column(Text, nullable=False)

    # Generation log
    full_prompt_sent = Column(Text, nullable=True)
    ai_raw_response = Column(Text, nullable=True)
    model_used = Column(String, nullable=True)
    generation_metadata_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    lesson = relationship("Lesson", back_populates="differentiated")

    __table_args__ = (
        Index("idx_differentiated_lessons_lesson", "lesson_id"),
    )


class Worksheet(Base):
    """Printable worksheet for one student, addressed by its QR code."""
    __tablename__ = "worksheets"

    id = Column(String, primary_key=True)
    lesson_id = Column(String, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=True)
    student_id = Column(String, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    worksheet_type = Column(String, nullable=False)
    worksheet_code = Column(String, nullable=False, unique=True)
    qr_code_url = Column(String, nullable=True)
    content_json = Column(Text, nullable=False)
    answer_key_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_worksheets_student", "student_id"),
    )


class WorksheetSubmission(Base):
    """A graded worksheet."""
    __tablename__ = "worksheet_submissions"

    id = Column(String, primary_key=True)
    worksheet_id = Column(String, ForeignKey("worksheets.id", ondelete="CASCADE"), nullable=False)
    accuracy_percentage = Column(Float, nullable=False)
    student_responses_json = Column(Text, nullable=True)  # [{isCorrect, errorType, studentAnswer}]
    skills_assessed_json = Column(Text, nullable=True)
    ai_analysis = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    worksheet = relationship("Worksheet")


class LessonAdjustment(Base):
    """Pending instructional adjustment (lesson_adjustment_queue)."""
    __tablename__ = "lesson_adjustment_queue"

    id = Column(String, primary_key=True)
    student_id = Column(String, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    worksheet_submission_id = Column(
        String, ForeignKey("worksheet_submissions.id"), nullable=True
    )
    subject = Column(String, nullable=False)
    adjustment_type = Column(String, nullable=False)  # advance, maintain, reteach, prerequisite
    adjustment_details_json = Column(Text, nullable=False)
    priority = Column(Integer, default=5)  # 1-10, higher = more urgent
    processed = Column(Boolean, default=False, nullable=False)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_adjustment_queue_student", "student_id", "processed"),
        Index("idx_adjustment_queue_priority", "priority", "created_at"),
    )


class MaterialConstraint(Base):
    """Zero-prep material rule rendered into the lesson system prompt."""
    __tablename__ = "material_constraints"

    id = Column(String, primary_key=True)
    constraint_type = Column(String, nullable=False)  # forbidden, acceptable, required
    description = Column(Text, nullable=False)
    validation_regex = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
