"""SQLAlchemy ORM models shared across features."""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Student(Base):
    """Students on a provider's caseload. Identified by initials only."""
    __tablename__ = "students"

    id = Column(String, primary_key=True)
    provider_id = Column(String, nullable=False)  # owning special-education teacher
    initials = Column(String, nullable=False)
    grade_level = Column(String, nullable=True)   # "K", "1" .. "12"
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    details = relationship(
        "StudentDetails", back_populates="student", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_students_provider", "provider_id"),
    )


class StudentDetails(Base):
    """Assessment and IEP detail for one student (1:1 with students)."""
    __tablename__ = "student_details"

    id = Column(String, primary_key=True)
    student_id = Column(String, ForeignKey("students.id", ondelete="CASCADE"),
                        nullable=False, unique=True)
    iep_goals_json = Column(Text, nullable=True)                 # JSON array of goal strings
    grade_month_reading_level = Column(String, nullable=True)    # e.g. "2.5"
    reading_wpm = Column(Integer, nullable=True)
    reading_comprehension = Column(Float, nullable=True)         # percent
    cognitive_assessments_json = Column(Text, nullable=True)     # JSON: {processing_speed: {...}, working_memory: {...}}
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    student = relationship("Student", back_populates="details")


class LLMConfig(Base):
    """Centralized LLM model configuration per component.

    Single source of truth for which provider+model each component uses.
    No fallbacks: missing config is an error.
    """
    __tablename__ = "llm_config"

    component_key = Column(String, primary_key=True)  # e.g. "lesson_generator"
    provider = Column(String, nullable=False)           # "openai", "anthropic", "google"
    model_id = Column(String, nullable=False)           # "claude-sonnet-4-5", "gpt-5.2", etc.
    description = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    updated_by = Column(String, nullable=True)
