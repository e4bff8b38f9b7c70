"""Repository for assessment type definitions."""
import uuid
from typing import List, Optional
from sqlalchemy.orm import Session

from features.ai_lessons.models.database import AssessmentType
from features.ai_lessons.models.domain import AssessmentTypeCreate, AssessmentTypeDefinition
from shared.utils.json_fields import dump_json, load_json


class AssessmentTypeRepository:
    """Persistence for the assessment_types table, returning domain definitions."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(self) -> List[AssessmentTypeDefinition]:
        rows = self.db.query(AssessmentType).order_by(AssessmentType.name).all()
        return [self._to_domain(row) for row in rows]

    def get_by_name(self, name: str) -> Optional[AssessmentTypeDefinition]:
        row = self.db.query(AssessmentType).filter(AssessmentType.name == name).first()
        return self._to_domain(row) if row else None

    def create(self, assessment: AssessmentTypeCreate) -> AssessmentTypeDefinition:
        """
        Insert a new assessment type.

        Args:
            assessment: Definition to store

        Returns:
            The stored definition with its generated id
        """
        row = AssessmentType(
            id=str(uuid.uuid4()),
            name=assessment.name,
            category=assessment.category,
            data_schema_json=dump_json(assessment.data_schema),
            interpretation_rules_json=assessment.interpretation_rules.model_dump_json(),
            prompt_fragments_json=assessment.prompt_fragments.model_dump_json(exclude_none=True),
            confidence_weight=assessment.confidence_weight,
        )
        self.db.add(row)
        self.db.flush()
        return self._to_domain(row)

    @staticmethod
    def _to_domain(row: AssessmentType) -> AssessmentTypeDefinition:
        return AssessmentTypeDefinition(
            id=row.id,
            name=row.name,
            category=row.category,
            data_schema=load_json(row.data_schema_json, {}),
            interpretation_rules=load_json(row.interpretation_rules_json, {}),
            prompt_fragments=load_json(row.prompt_fragments_json, {}),
            confidence_weight=row.confidence_weight if row.confidence_weight is not None else 1.0,
        )
