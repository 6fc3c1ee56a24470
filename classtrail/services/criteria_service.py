"""Grading criteria (weighted rubric) storage."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from classtrail.core.exceptions import ConflictError, NotFoundError, ValidationFailure
from classtrail.models.attempt import Criterion

logger = logging.getLogger(__name__)

DEFAULT_CRITERIA = [
    {"name": "Correctness", "weight": 0.4, "description": "The answer solves the stated problem."},
    {"name": "Code quality", "weight": 0.3, "description": "Readable, well structured code."},
    {"name": "Efficiency", "weight": 0.2, "description": "Reasonable use of time and memory."},
    {"name": "Best practices", "weight": 0.1, "description": "Idiomatic use of the language."},
]


def _check_weight(weight: float) -> None:
    if weight is None or not 0 < weight <= 1:
        raise ValidationFailure("Criterion weight must be in (0, 1]", field="weight")


class CriteriaService:
    def __init__(self, db: Session):
        self.db = db

    def list(self) -> List[Criterion]:
        return self.db.query(Criterion).order_by(Criterion.id).all()

    def get(self, criterion_id: int) -> Criterion:
        criterion = self.db.get(Criterion, criterion_id)
        if not criterion:
            raise NotFoundError("criterion")
        return criterion

    def create(self, name: str, weight: float, description: Optional[str] = None) -> Criterion:
        if not name or not name.strip():
            raise ValidationFailure("Criterion name is required", field="name")
        _check_weight(weight)

        criterion = Criterion(name=name.strip(), weight=weight, description=description)
        self.db.add(criterion)
        self._commit_unique(name)
        self.db.refresh(criterion)
        logger.info("Criterion %s (%s) created", criterion.id, criterion.name)
        return criterion

    def update(self, criterion_id: int, patch: Dict[str, Any]) -> Criterion:
        criterion = self.get(criterion_id)
        if patch.get("weight") is not None:
            _check_weight(patch["weight"])
            criterion.weight = patch["weight"]
        if patch.get("name") is not None:
            if not patch["name"].strip():
                raise ValidationFailure("Criterion name is required", field="name")
            criterion.name = patch["name"].strip()
        if patch.get("description") is not None:
            criterion.description = patch["description"]

        self._commit_unique(criterion.name)
        self.db.refresh(criterion)
        return criterion

    def delete(self, criterion_id: int) -> None:
        criterion = self.get(criterion_id)
        self.db.delete(criterion)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info("Criterion %s deleted", criterion_id)

    def ensure_default_criteria(self) -> List[Criterion]:
        """Seed the default rubric when no criterion exists. Never duplicates."""
        existing = self.list()
        if existing:
            return existing

        for data in DEFAULT_CRITERIA:
            self.db.add(Criterion(**data))
        try:
            self.db.commit()
        except IntegrityError:
            # seeded concurrently by another worker
            self.db.rollback()
            return self.list()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info("Seeded %d default criteria", len(DEFAULT_CRITERIA))
        return self.list()

    def _commit_unique(self, name: str) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"A criterion named '{name}' already exists", error_code="CRITERION_EXISTS")
        except SQLAlchemyError:
            self.db.rollback()
            raise
