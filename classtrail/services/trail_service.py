"""Trail modules and lessons management."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classtrail.core.exceptions import NotFoundError, ValidationFailure
from classtrail.models.trail import Lesson, TrailModule
from classtrail.models.user import User
from classtrail.services.catalog import ExerciseCatalog
from classtrail.services.classroom_service import ClassroomService
from classtrail.services.permissions import can_manage

logger = logging.getLogger(__name__)

MODULE_FIELDS = ("title", "description", "icon", "order", "xp_reward", "active")


class TrailService:
    """Create, edit and remove the modules and lessons of a classroom trail.

    Every write goes through `can_manage` on the parent classroom. Modules are
    soft-deleted; lessons are deleted for real.
    """

    def __init__(self, db: Session, catalog: Optional[ExerciseCatalog] = None):
        self.db = db
        self.catalog = catalog or ExerciseCatalog(db)
        self.classrooms = ClassroomService(db, catalog=self.catalog)

    def _managed_module(self, module_id, actor: User) -> TrailModule:
        module = self.db.get(TrailModule, module_id)
        if not module or not can_manage(actor, module.classroom):
            raise NotFoundError("module")
        return module

    def create_module(
        self,
        classroom_id,
        actor: User,
        title: str,
        description: Optional[str] = None,
        icon: Optional[str] = None,
        order: int = 0,
        xp_reward: int = 0
    ) -> TrailModule:
        classroom = self.classrooms.get_managed(classroom_id, actor)
        if not title or not title.strip():
            raise ValidationFailure("Module title is required", field="title")
        if xp_reward is not None and xp_reward < 0:
            raise ValidationFailure("XP reward cannot be negative", field="xp_reward")

        module = TrailModule(
            classroom_id=classroom.id,
            title=title.strip(),
            description=description,
            icon=icon,
            order=order or 0,
            xp_reward=xp_reward or 0,
            active=True,
        )
        self.db.add(module)
        self._commit()
        self.db.refresh(module)

        logger.info("Module %s created in classroom %s", module.id, classroom_id)
        return module

    def update_module(self, module_id, actor: User, patch: Dict[str, Any]) -> TrailModule:
        module = self._managed_module(module_id, actor)

        changes = {k: v for k, v in patch.items() if k in MODULE_FIELDS and v is not None}
        if "title" in changes and not str(changes["title"]).strip():
            raise ValidationFailure("Module title is required", field="title")
        if changes.get("xp_reward", 0) < 0:
            raise ValidationFailure("XP reward cannot be negative", field="xp_reward")

        for field, value in changes.items():
            setattr(module, field, value)
        self._commit()
        self.db.refresh(module)

        logger.info("Module %s updated", module_id)
        return module

    def delete_module(self, module_id, actor: User) -> None:
        module = self._managed_module(module_id, actor)
        module.active = False
        self._commit()
        logger.info("Module %s removed", module_id)

    def create_lesson(
        self,
        module_id,
        actor: User,
        exercise_id: int,
        order: int = 0,
        xp_reward: int = 10
    ) -> Lesson:
        module = self._managed_module(module_id, actor)
        if xp_reward is not None and xp_reward < 0:
            raise ValidationFailure("XP reward cannot be negative", field="xp_reward")
        self.catalog.require_exercise(exercise_id)

        lesson = Lesson(
            module_id=module.id,
            exercise_id=exercise_id,
            order=order or 0,
            xp_reward=xp_reward if xp_reward is not None else 10,
        )
        self.db.add(lesson)
        self._commit()
        self.db.refresh(lesson)

        logger.info("Lesson %s created in module %s", lesson.id, module_id)
        return lesson

    def delete_lesson(self, lesson_id, actor: User) -> None:
        lesson = self.db.get(Lesson, lesson_id)
        if not lesson or not can_manage(actor, lesson.module.classroom):
            raise NotFoundError("lesson")

        self.db.delete(lesson)
        self._commit()
        logger.info("Lesson %s removed", lesson_id)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
