"""Exercise attempt lifecycle.

An attempt moves from `in_progress` to `completed` exactly once. Finalizing
without a prior start creates and completes the attempt in one step.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from classtrail.core.exceptions import AlreadyCompletedError, NotFoundError
from classtrail.models.attempt import (
    ATTEMPT_COMPLETED,
    ATTEMPT_IN_PROGRESS,
    ATTEMPT_NOT_STARTED,
    ExerciseAttempt,
)
from classtrail.models.user import User
from classtrail.services.catalog import ExerciseCatalog
from classtrail.services.scoring import attempt_statistics, grading_counts
from classtrail.utils.numbers import percentage, round_half_up

logger = logging.getLogger(__name__)


def elapsed_minutes(attempt: ExerciseAttempt) -> int:
    if not attempt.started_at or not attempt.finished_at:
        return 0
    return round_half_up((attempt.finished_at - attempt.started_at).total_seconds() / 60)


class AttemptService:
    def __init__(self, db: Session, catalog: Optional[ExerciseCatalog] = None):
        self.db = db
        self.catalog = catalog or ExerciseCatalog(db)

    def _validate(self, student_id, exercise_id: int) -> None:
        if not self.db.get(User, student_id):
            raise NotFoundError("student")
        if not self.catalog.exercise_exists(exercise_id):
            raise NotFoundError("exercise")

    def _find(self, student_id, exercise_id: int) -> Optional[ExerciseAttempt]:
        return self.db.query(ExerciseAttempt).filter(
            ExerciseAttempt.student_id == student_id,
            ExerciseAttempt.exercise_id == exercise_id
        ).first()

    def statistics(self, attempt: ExerciseAttempt) -> Dict[str, int]:
        return attempt_statistics(attempt.answers, self.catalog.count_questions(attempt.exercise_id))

    def start(self, student_id, exercise_id: int) -> ExerciseAttempt:
        """Idempotent: an existing attempt for the pair is returned unchanged."""
        self._validate(student_id, exercise_id)

        existing = self._find(student_id, exercise_id)
        if existing:
            return existing

        attempt = ExerciseAttempt(
            student_id=student_id,
            exercise_id=exercise_id,
            started_at=datetime.utcnow(),
            status=ATTEMPT_IN_PROGRESS,
        )
        self.db.add(attempt)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._find(student_id, exercise_id)
            if existing is None:
                raise
            return existing
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(attempt)

        logger.info("Attempt %s started: student %s, exercise %s", attempt.id, student_id, exercise_id)
        return attempt

    def finalize(self, student_id, exercise_id: int) -> Dict[str, Any]:
        self._validate(student_id, exercise_id)

        attempt = self._find(student_id, exercise_id)
        if attempt is None:
            attempt = self._create_completed(student_id, exercise_id)
        else:
            self.complete(attempt)

        return self._result(attempt)

    def _create_completed(self, student_id, exercise_id: int) -> ExerciseAttempt:
        now = datetime.utcnow()
        attempt = ExerciseAttempt(
            student_id=student_id,
            exercise_id=exercise_id,
            started_at=now,
            finished_at=now,
            status=ATTEMPT_COMPLETED,
        )
        self.db.add(attempt)
        try:
            self.db.commit()
        except IntegrityError:
            # somebody started it meanwhile; finish that one instead
            self.db.rollback()
            attempt = self._find(student_id, exercise_id)
            if attempt is None:
                raise
            self.complete(attempt)
            return attempt
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(attempt)

        logger.info("Attempt %s created already completed", attempt.id)
        return attempt

    def complete(self, attempt: ExerciseAttempt) -> ExerciseAttempt:
        """Move an attempt to `completed`.

        The status guard lives in the UPDATE itself, so two concurrent
        finalizations cannot both succeed.
        """
        try:
            updated = self.db.query(ExerciseAttempt).filter(
                ExerciseAttempt.id == attempt.id,
                ExerciseAttempt.status == ATTEMPT_IN_PROGRESS
            ).update(
                {ExerciseAttempt.status: ATTEMPT_COMPLETED, ExerciseAttempt.finished_at: datetime.utcnow()},
                synchronize_session=False
            )
            if not updated:
                self.db.rollback()
                raise AlreadyCompletedError()
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(attempt)

        logger.info("Attempt %s completed", attempt.id)
        return attempt

    def _result(self, attempt: ExerciseAttempt) -> Dict[str, Any]:
        return {
            "attempt": attempt,
            "statistics": self.statistics(attempt),
            "elapsed_minutes": elapsed_minutes(attempt),
        }

    def status(self, student_id, exercise_id: int) -> Dict[str, Any]:
        attempt = self._find(student_id, exercise_id)
        if attempt is None:
            return {"status": ATTEMPT_NOT_STARTED, "exercise_id": exercise_id, "attempt": None, "statistics": None}
        return {
            "status": attempt.status,
            "exercise_id": exercise_id,
            "attempt": attempt,
            "statistics": self.statistics(attempt),
        }

    def list_for_student(self, student_id) -> List[ExerciseAttempt]:
        return self.db.query(ExerciseAttempt).filter(
            ExerciseAttempt.student_id == student_id
        ).order_by(ExerciseAttempt.started_at.desc()).all()

    def list_completed(self, student_id) -> List[Dict[str, Any]]:
        attempts = self.db.query(ExerciseAttempt).filter(
            ExerciseAttempt.student_id == student_id,
            ExerciseAttempt.status == ATTEMPT_COMPLETED
        ).order_by(ExerciseAttempt.finished_at.desc()).all()
        return [{"attempt": a, "statistics": self.statistics(a)} for a in attempts]

    def summary(self, student_id) -> Dict[str, int]:
        attempts = self.list_for_student(student_id)
        completed = sum(1 for a in attempts if a.status == ATTEMPT_COMPLETED)
        in_progress = sum(1 for a in attempts if a.status == ATTEMPT_IN_PROGRESS)

        total_answers = 0
        approved_answers = 0
        for attempt in attempts:
            counts = grading_counts(attempt.answers)
            total_answers += len({a.question_id for a in attempt.answers})
            approved_answers += counts["approved"]

        return {
            "total_exercises": len(attempts),
            "completed_exercises": completed,
            "in_progress_exercises": in_progress,
            "completion_percent": percentage(completed, len(attempts)),
            "total_answers": total_answers,
            "approved_answers": approved_answers,
            "approval_percent": percentage(approved_answers, total_answers),
        }
