"""Trail composition and per-student lesson progress.

XP is recomputed, never accumulated: recording a lesson again replaces the
XP of the previous record, so resubmitting the same lesson cannot farm XP.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from classtrail.core.exceptions import NotFoundError, ValidationFailure
from classtrail.models.classroom import Classroom, Enrollment
from classtrail.models.trail import Lesson, LessonProgress, TrailModule
from classtrail.utils.numbers import percentage, round_half_up

logger = logging.getLogger(__name__)


def compute_xp(completed: bool, score: int, xp_reward: int) -> int:
    if not completed:
        return 0
    return round_half_up(score / 100 * xp_reward)


class ProgressService:
    def __init__(self, db: Session):
        self.db = db

    def _active_modules(self, classroom_id) -> List[TrailModule]:
        return self.db.query(TrailModule).options(
            selectinload(TrailModule.lessons).selectinload(Lesson.exercise)
        ).filter(
            TrailModule.classroom_id == classroom_id,
            TrailModule.active.is_(True)
        ).order_by(TrailModule.order, TrailModule.created_at).all()

    def _active_enrollment(self, classroom_id, student_id) -> Optional[Enrollment]:
        return self.db.query(Enrollment).filter(
            Enrollment.classroom_id == classroom_id,
            Enrollment.student_id == student_id,
            Enrollment.active.is_(True)
        ).first()

    def count_lessons(self, classroom_id) -> int:
        """Lessons of the active modules of a classroom."""
        return self.db.query(func.count(Lesson.id)).select_from(Lesson).join(TrailModule).filter(
            TrailModule.classroom_id == classroom_id,
            TrailModule.active.is_(True)
        ).scalar() or 0

    def enrollment_stats(self, enrollment: Enrollment, total_lessons: Optional[int] = None) -> Dict[str, int]:
        """Completed lessons and XP of one enrollment against the classroom's trail."""
        if total_lessons is None:
            total_lessons = self.count_lessons(enrollment.classroom_id)

        completed, xp_total = self.db.query(
            func.count(LessonProgress.id),
            func.coalesce(func.sum(LessonProgress.xp_earned), 0)
        ).select_from(LessonProgress).join(Lesson, Lesson.id == LessonProgress.lesson_id).join(
            TrailModule, TrailModule.id == Lesson.module_id
        ).filter(
            LessonProgress.enrollment_id == enrollment.id,
            LessonProgress.completed.is_(True),
            TrailModule.active.is_(True)
        ).one()

        return {
            "total_lessons": total_lessons,
            "completed_lessons": completed,
            "percent": percentage(completed, total_lessons),
            "xp_total": int(xp_total),
        }

    def get_trail(self, classroom_id) -> List[Dict[str, Any]]:
        if not self.db.get(Classroom, classroom_id):
            raise NotFoundError("classroom")

        trail = []
        for module in self._active_modules(classroom_id):
            trail.append({
                "id": module.id,
                "title": module.title,
                "description": module.description,
                "icon": module.icon,
                "order": module.order,
                "xp_reward": module.xp_reward,
                "lessons": [
                    {
                        "id": lesson.id,
                        "order": lesson.order,
                        "xp_reward": lesson.xp_reward,
                        "exercise": {"id": lesson.exercise.id, "title": lesson.exercise.title}
                        if lesson.exercise else None,
                    }
                    for lesson in module.lessons
                ],
            })
        return trail

    def get_student_progress(self, classroom_id, student_id) -> Dict[str, Any]:
        enrollment = self._active_enrollment(classroom_id, student_id)
        if not enrollment:
            raise NotFoundError("enrollment", "Student is not enrolled in this classroom")

        records = {
            p.lesson_id: p
            for p in self.db.query(LessonProgress).filter(LessonProgress.enrollment_id == enrollment.id).all()
        }

        total = 0
        completed = 0
        xp_total = 0
        modules = []
        for module in self._active_modules(classroom_id):
            lessons = []
            for lesson in module.lessons:
                total += 1
                record = records.get(lesson.id)
                done = bool(record and record.completed)
                if done:
                    completed += 1
                    xp_total += record.xp_earned

                lessons.append({
                    "id": lesson.id,
                    "exercise": {"id": lesson.exercise.id, "title": lesson.exercise.title}
                    if lesson.exercise else None,
                    "order": lesson.order,
                    "xp_reward": lesson.xp_reward,
                    "completed": done,
                    "score": record.score if record else 0,
                    "xp_earned": record.xp_earned if record else 0,
                    "attempts": record.attempts if record else 0,
                })

            modules.append({
                "id": module.id,
                "title": module.title,
                "description": module.description,
                "icon": module.icon,
                "order": module.order,
                "xp_reward": module.xp_reward,
                "completed": all(l["completed"] for l in lessons),
                "lessons": lessons,
            })

        return {
            "classroom_id": classroom_id,
            "student_id": student_id,
            "statistics": {
                "total_lessons": total,
                "completed_lessons": completed,
                "percent": percentage(completed, total),
                "xp_total": xp_total,
            },
            "modules": modules,
        }

    def record_progress(self, classroom_id, lesson_id, student_id, completed: bool, score: int) -> Dict[str, Any]:
        """Upsert the student's record for a lesson.

        Returns the record and the XP granted by this call.
        """
        if score is None or not 0 <= score <= 100:
            raise ValidationFailure("Score must be between 0 and 100", field="score")

        enrollment = self._active_enrollment(classroom_id, student_id)
        if not enrollment:
            raise NotFoundError("enrollment", "Student is not enrolled in this classroom")

        lesson = self.db.query(Lesson).join(TrailModule).filter(
            Lesson.id == lesson_id,
            TrailModule.classroom_id == classroom_id,
            TrailModule.active.is_(True)
        ).first()
        if not lesson:
            raise NotFoundError("lesson")

        xp_earned = compute_xp(completed, score, lesson.xp_reward)

        progress = self._find_progress(enrollment.id, lesson.id)
        if progress:
            self._apply(progress, completed, score, xp_earned, increment=True)
            self._commit()
        else:
            progress = LessonProgress(
                enrollment_id=enrollment.id,
                lesson_id=lesson.id,
                attempts=1,
            )
            self._apply(progress, completed, score, xp_earned, increment=False)
            self.db.add(progress)
            try:
                self.db.commit()
            except IntegrityError:
                # a concurrent call created the row first; fall back to updating it
                self.db.rollback()
                progress = self._find_progress(enrollment.id, lesson.id)
                if progress is None:
                    raise
                self._apply(progress, completed, score, xp_earned, increment=True)
                self._commit()
            except SQLAlchemyError:
                self.db.rollback()
                raise

        self.db.refresh(progress)
        logger.info(
            "Progress recorded: student %s, lesson %s, completed=%s, xp=%d",
            student_id, lesson_id, completed, xp_earned
        )
        return {"progress": progress, "xp_earned": xp_earned}

    def _find_progress(self, enrollment_id, lesson_id) -> Optional[LessonProgress]:
        return self.db.query(LessonProgress).filter(
            LessonProgress.enrollment_id == enrollment_id,
            LessonProgress.lesson_id == lesson_id
        ).first()

    @staticmethod
    def _apply(progress: LessonProgress, completed: bool, score: int, xp_earned: int, increment: bool) -> None:
        progress.completed = completed
        progress.score = score
        progress.xp_earned = xp_earned
        progress.completed_at = datetime.utcnow() if completed else None
        if increment:
            progress.attempts = (progress.attempts or 0) + 1

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
