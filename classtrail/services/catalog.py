"""Exercise catalog lookups used by the trail and grading services."""
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classtrail.core.exceptions import NotFoundError
from classtrail.models.attempt import Answer, Evaluation, ExerciseAttempt
from classtrail.models.exercise import Exercise, ExerciseQuestion, Question

logger = logging.getLogger(__name__)


class ExerciseCatalog:
    """Read access to exercises and their questions, plus cascading delete."""

    def __init__(self, db: Session):
        self.db = db

    def get_exercise(self, exercise_id: int) -> Optional[Exercise]:
        return self.db.get(Exercise, exercise_id)

    def exercise_exists(self, exercise_id: int) -> bool:
        return self.db.query(Exercise.id).filter(Exercise.id == exercise_id).first() is not None

    def require_exercise(self, exercise_id: int) -> Exercise:
        exercise = self.get_exercise(exercise_id)
        if not exercise:
            raise NotFoundError("exercise")
        return exercise

    def questions_of(self, exercise_id: int) -> List[Question]:
        return (
            self.db.query(Question)
            .join(ExerciseQuestion, ExerciseQuestion.question_id == Question.id)
            .filter(ExerciseQuestion.exercise_id == exercise_id)
            .order_by(ExerciseQuestion.order, Question.id)
            .all()
        )

    def count_questions(self, exercise_id: int) -> int:
        return self.db.query(ExerciseQuestion).filter(ExerciseQuestion.exercise_id == exercise_id).count()

    def get_question(self, question_id: int) -> Optional[Question]:
        return self.db.get(Question, question_id)

    def question_belongs_to_exercise(self, question_id: int, exercise_id: int) -> bool:
        link = self.db.query(ExerciseQuestion.id).filter(
            ExerciseQuestion.exercise_id == exercise_id,
            ExerciseQuestion.question_id == question_id
        ).first()
        return link is not None

    def delete_exercise(self, exercise_id: int) -> None:
        """Delete an exercise and every attempt, answer and evaluation hanging off it.

        Runs as one transaction so no evaluation is left pointing at a removed answer.
        """
        exercise = self.require_exercise(exercise_id)

        try:
            attempt_ids = [
                row.id for row in
                self.db.query(ExerciseAttempt.id).filter(ExerciseAttempt.exercise_id == exercise_id).all()
            ]
            if attempt_ids:
                answer_ids = self.db.query(Answer.id).filter(Answer.attempt_id.in_(attempt_ids))
                evaluations = self.db.query(Evaluation).filter(
                    Evaluation.answer_id.in_(answer_ids.scalar_subquery())
                ).delete(synchronize_session=False)
                answers = self.db.query(Answer).filter(
                    Answer.attempt_id.in_(attempt_ids)
                ).delete(synchronize_session=False)
                self.db.query(ExerciseAttempt).filter(
                    ExerciseAttempt.id.in_(attempt_ids)
                ).delete(synchronize_session=False)
                logger.info(
                    "Removed %d attempts, %d answers, %d evaluations of exercise %s",
                    len(attempt_ids), answers, evaluations, exercise_id
                )

            self.db.delete(exercise)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info("Exercise %s deleted", exercise_id)
