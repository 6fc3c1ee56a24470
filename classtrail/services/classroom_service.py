"""Classroom registry.

Creation, lookup, update and soft deletion of classrooms, the single
default (onboarding) classroom, and the exercises linked to a classroom.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from classtrail.core.exceptions import (
    ConflictError,
    ExerciseAlreadyLinkedError,
    NotFoundError,
    ValidationFailure,
)
from classtrail.models.classroom import Classroom, ClassroomExercise, Enrollment
from classtrail.models.trail import TrailModule
from classtrail.models.user import User
from classtrail.services.access_codes import allocate_unique_code
from classtrail.services.catalog import ExerciseCatalog
from classtrail.services.permissions import can_manage

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "active")


class ClassroomService:
    def __init__(self, db: Session, catalog: Optional[ExerciseCatalog] = None):
        self.db = db
        self.catalog = catalog or ExerciseCatalog(db)

    def create(self, owner_id, name: str, description: Optional[str] = None) -> Classroom:
        if not name or not name.strip():
            raise ValidationFailure("Classroom name is required", field="name")

        classroom = Classroom(
            name=name.strip(),
            description=description,
            access_code=allocate_unique_code(self.db),
            owner_id=owner_id,
            is_default=False,
            active=True,
        )
        self.db.add(classroom)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(classroom)

        logger.info("Classroom %s created by %s", classroom.id, owner_id)
        return classroom

    def list_for_owner(self, owner_id) -> List[Dict[str, Any]]:
        """Active classrooms of an owner, newest first, with headline counts."""
        classrooms = self.db.query(Classroom).filter(
            Classroom.owner_id == owner_id,
            Classroom.active.is_(True)
        ).order_by(Classroom.created_at.desc()).all()

        return [
            {"classroom": classroom, "counts": self._counts(classroom.id)}
            for classroom in classrooms
        ]

    def _counts(self, classroom_id) -> Dict[str, int]:
        students = self.db.query(func.count(Enrollment.id)).filter(
            Enrollment.classroom_id == classroom_id,
            Enrollment.active.is_(True)
        ).scalar()
        exercises = self.db.query(func.count(ClassroomExercise.id)).filter(
            ClassroomExercise.classroom_id == classroom_id
        ).scalar()
        modules = self.db.query(func.count(TrailModule.id)).filter(
            TrailModule.classroom_id == classroom_id,
            TrailModule.active.is_(True)
        ).scalar()
        return {"students": students or 0, "exercises": exercises or 0, "modules": modules or 0}

    def get(self, classroom_id, requester_id=None) -> Classroom:
        """Fetch a classroom.

        With `requester_id`, anybody but the owner gets NotFound. Callers that
        need wider visibility (students) omit it and authorize on their own.
        """
        classroom = self.db.get(Classroom, classroom_id)
        if not classroom:
            raise NotFoundError("classroom")
        if requester_id is not None and classroom.owner_id != requester_id:
            raise NotFoundError("classroom")
        return classroom

    def get_managed(self, classroom_id, actor: User) -> Classroom:
        """Classroom the actor may manage; NotFound otherwise."""
        classroom = self.db.get(Classroom, classroom_id)
        if not classroom or not can_manage(actor, classroom):
            raise NotFoundError("classroom")
        return classroom

    def update(self, classroom_id, actor: User, patch: Dict[str, Any]) -> Classroom:
        classroom = self.get_managed(classroom_id, actor)

        changes = {k: v for k, v in patch.items() if k in UPDATABLE_FIELDS and v is not None}
        if "name" in changes:
            if not str(changes["name"]).strip():
                raise ValidationFailure("Classroom name is required", field="name")
            changes["name"] = changes["name"].strip()

        for field, value in changes.items():
            setattr(classroom, field, value)
        if changes.get("active") is False:
            classroom.is_default = False

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(classroom)

        logger.info("Classroom %s updated by %s (%s)", classroom_id, actor.id, ", ".join(sorted(changes)))
        return classroom

    def deactivate(self, classroom_id, actor: Optional[User] = None) -> Classroom:
        """Soft delete. Without an actor (admin tooling) ownership is not checked."""
        if actor is not None:
            classroom = self.get_managed(classroom_id, actor)
        else:
            classroom = self.get(classroom_id)

        classroom.active = False
        classroom.is_default = False
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(classroom)

        if actor is not None:
            logger.info("Classroom %s deactivated by %s", classroom_id, actor.id)
        else:
            logger.info("Classroom %s deactivated (admin mode)", classroom_id)
        return classroom

    def set_default(self, classroom_id) -> Classroom:
        """Make `classroom_id` the only default classroom.

        The clear and the set share one transaction; the partial unique index
        on is_default rejects a concurrent writer instead of letting two
        defaults coexist.
        """
        classroom = self.get(classroom_id)
        if not classroom.active:
            raise ValidationFailure("An inactive classroom cannot be the default")

        try:
            cleared = self.db.query(Classroom).filter(
                Classroom.is_default.is_(True),
                Classroom.id != classroom.id
            ).update({Classroom.is_default: False}, synchronize_session=False)
            classroom.is_default = True
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("Concurrent default classroom change while setting %s", classroom_id)
            raise ConflictError("Default classroom changed concurrently, retry", error_code="DEFAULT_CONFLICT")
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(classroom)

        logger.info("Classroom %s is now the default (cleared %d)", classroom_id, cleared)
        return classroom

    def get_default(self) -> Optional[Classroom]:
        return self.db.query(Classroom).filter(
            Classroom.is_default.is_(True),
            Classroom.active.is_(True)
        ).first()

    # -- exercises linked to a classroom -----------------------------------

    def list_exercises(self, classroom_id) -> List[ClassroomExercise]:
        self.get(classroom_id)
        return self.db.query(ClassroomExercise).filter(
            ClassroomExercise.classroom_id == classroom_id
        ).order_by(ClassroomExercise.order).all()

    def link_exercise(
        self,
        classroom_id,
        actor: User,
        exercise_id: int,
        order: int = 0,
        required: bool = True
    ) -> ClassroomExercise:
        classroom = self.get_managed(classroom_id, actor)
        self.catalog.require_exercise(exercise_id)

        existing = self.db.query(ClassroomExercise).filter(
            ClassroomExercise.classroom_id == classroom.id,
            ClassroomExercise.exercise_id == exercise_id
        ).first()
        if existing:
            raise ExerciseAlreadyLinkedError()

        link = ClassroomExercise(
            classroom_id=classroom.id,
            exercise_id=exercise_id,
            order=order,
            required=required,
        )
        self.db.add(link)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ExerciseAlreadyLinkedError()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(link)

        logger.info("Exercise %s linked to classroom %s", exercise_id, classroom_id)
        return link

    def unlink_exercise(self, classroom_id, actor: User, exercise_id: int) -> None:
        classroom = self.get_managed(classroom_id, actor)
        link = self.db.query(ClassroomExercise).filter(
            ClassroomExercise.classroom_id == classroom.id,
            ClassroomExercise.exercise_id == exercise_id
        ).first()
        if not link:
            raise NotFoundError("exercise", "Exercise is not linked to this classroom")

        self.db.delete(link)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info("Exercise %s unlinked from classroom %s", exercise_id, classroom_id)
