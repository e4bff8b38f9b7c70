"""Repository for material constraints."""
import uuid
from typing import List, Optional
from sqlalchemy.orm import Session

from features.ai_lessons.models.database import MaterialConstraint


class MaterialConstraintRepository:
    """Persistence for material_constraints."""

    def __init__(self, db: Session):
        self.db = db

    def get_active(self) -> List[MaterialConstraint]:
        """Active constraints ordered by type (acceptable, forbidden, required)."""
        return (
            self.db.query(MaterialConstraint)
            .filter(MaterialConstraint.active.is_(True))
            .order_by(MaterialConstraint.constraint_type, MaterialConstraint.created_at)
            .all()
        )

    def create(
        self, constraint_type: str, description: str, validation_regex: Optional[str] = None
    ) -> MaterialConstraint:
        row = MaterialConstraint(
            id=str(uuid.uuid4()),
            constraint_type=constraint_type,
            description=description,
            validation_regex=validation_regex,
            active=True,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def count(self) -> int:
        return self.db.query(MaterialConstraint).count()
