"""Repository for lessons and their differentiated detail records."""
import json
import uuid
from typing import List, Optional
from sqlalchemy.orm import Session

from features.ai_lessons.models.database import Lesson, DifferentiatedLesson
from shared.utils.json_fields import dump_json


class LessonRepository:
    """Persistence for lessons + differentiated_lessons."""

    def __init__(self, db: Session):
        self.db = db

    def create_lesson(
        self,
        provider_id: str,
        title: str,
        subject: str,
        content: dict,
        duration_minutes: int,
    ) -> Lesson:
        row = Lesson(
            id=str(uuid.uuid4()),
            provider_id=provider_id,
            title=title,
            subject=subject,
            content_json=dump_json(content),
            duration_minutes=duration_minutes,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def create_differentiated(
        self,
        lesson_id: str,
        lesson_type: str,
        student_ids: List[str],
        differentiation_map: dict,
        teacher_guidance: dict,
        data_confidence: dict,
        materials_included: dict,
        whole_group_components: Optional[dict] = None,
        full_prompt_sent: Optional[str] = None,
        ai_raw_response: Optional[str] = None,
        model_used: Optional[str] = None,
        generation_metadata: Optional[dict] = None,
    ) -> DifferentiatedLesson:
        row = DifferentiatedLesson(
            id=str(uuid.uuid4()),
            lesson_id=lesson_id,
            lesson_type=lesson_type,
            student_ids_json=dump_json(student_ids),
            differentiation_map_json=dump_json(differentiation_map),
            whole_group_components_json=dump_json(whole_group_components),
            teacher_guidance_json=dump_json(teacher_guidance),
            data_confidence_json=dump_json(data_confidence),
            materials_included_json=dump_json(materials_included),
            full_prompt_sent=full_prompt_sent,
            ai_raw_response=ai_raw_response,
            model_used=model_used,
            generation_metadata_json=dump_json(generation_metadata),
        )
        self.db.add(row)
        self.db.flush()
        return row

    def get_differentiated(self, differentiated_lesson_id: str) -> Optional[DifferentiatedLesson]:
        """Return a differentiated lesson (with its parent lesson loaded lazily), or None."""
        return self.db.query(DifferentiatedLesson).filter(
            DifferentiatedLesson.id == differentiated_lesson_id
        ).first()

    def get_recent_for_student(self, student_id: str, limit: int = 5) -> List[DifferentiatedLesson]:
        """Most recent differentiated lessons that include the student."""
        # student_ids_json is a JSON array of quoted ids
        pattern = f"%{json.dumps(student_id)}%"
        return (
            self.db.query(DifferentiatedLesson)
            .filter(DifferentiatedLesson.student_ids_json.like(pattern))
            .order_by(DifferentiatedLesson.created_at.desc())
            .limit(limit)
            .all()
        )
