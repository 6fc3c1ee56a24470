"""Answer submission, background evaluation and auto-completion.

Submitting an answer only persists it. Programming answers are then graded
off the request path: the evaluation task opens its own session and writes
Evaluation rows when it is done. Clients poll status to see the outcome.
Evaluator failures are stored as a not-approved evaluation so an answer
never stays ungraded because of a transient outage.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from classtrail.core.config import settings
from classtrail.core.exceptions import EvaluatorQuotaExceeded, NotFoundError, ValidationFailure
from classtrail.models.attempt import ATTEMPT_IN_PROGRESS, Answer, Criterion, Evaluation, ExerciseAttempt
from classtrail.models.exercise import QUESTION_KIND_CODE
from classtrail.services.attempt_service import AttemptService, elapsed_minutes
from classtrail.services.catalog import ExerciseCatalog
from classtrail.services.criteria_service import CriteriaService
from classtrail.services.scoring import grading_counts

logger = logging.getLogger(__name__)

MANUAL_REVIEW_FEEDBACK = "Automatic evaluation failed. The answer will be reviewed manually."
MANUAL_REVIEW_SUGGESTIONS = ["Wait for a manual review"]
QUOTA_FEEDBACK = (
    "Automatic grading is temporarily unavailable. "
    "The answer is pending review and will be graded later."
)
QUOTA_SUGGESTIONS = ["Your answer was saved", "Check back later for the result"]

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=settings.EVALUATION_WORKERS,
                thread_name_prefix="evaluation",
            )
        return _executor


def _default_scheduler(fn: Callable, *args) -> Future:
    return _get_executor().submit(fn, *args)


def _record_fallback(db: Session, answer: Answer, criteria: List[Criterion], feedback: str, suggestions: List[str]) -> None:
    if not criteria:
        logger.warning("No criteria configured; answer %s stays ungraded", answer.id)
        return
    db.add(Evaluation(
        answer_id=answer.id,
        criterion_id=criteria[0].id,
        approved=False,
        score=0.0,
        feedback=feedback,
        suggestions=suggestions,
        evaluated_at=datetime.utcnow(),
    ))
    db.commit()


def evaluate_answer(answer_id, session_factory: sessionmaker, evaluator) -> None:
    """Grade one answer with the evaluator and store one evaluation per criterion."""
    db = session_factory()
    try:
        answer = db.get(Answer, answer_id)
        if not answer:
            logger.warning("Answer %s vanished before evaluation", answer_id)
            return
        if answer.evaluations:
            logger.info("Answer %s already evaluated, skipping", answer_id)
            return

        exercise = answer.attempt.exercise
        question = answer.question
        criteria = CriteriaService(db).list()
        statement = f"{exercise.statement}\n\n{question.prompt}" if question.prompt else exercise.statement
        reference = question.reference_answer or exercise.reference_answer

        try:
            result = evaluator.evaluate(statement, answer.text, reference)
        except EvaluatorQuotaExceeded:
            logger.warning("Evaluator quota exhausted, answer %s left for review", answer_id)
            _record_fallback(db, answer, criteria, QUOTA_FEEDBACK, QUOTA_SUGGESTIONS)
            return
        except Exception:
            logger.exception("Evaluator failed for answer %s", answer_id)
            _record_fallback(db, answer, criteria, MANUAL_REVIEW_FEEDBACK, MANUAL_REVIEW_SUGGESTIONS)
            return

        now = datetime.utcnow()
        for criterion in criteria:
            db.add(Evaluation(
                answer_id=answer.id,
                criterion_id=criterion.id,
                approved=result.approved,
                score=result.score,
                feedback=result.feedback,
                suggestions=list(result.suggestions),
                evaluated_at=now,
            ))
        db.commit()
        logger.info("Answer %s evaluated against %d criteria", answer_id, len(criteria))
    except IntegrityError:
        # another worker stored the evaluations first
        db.rollback()
        logger.info("Answer %s was evaluated concurrently, keeping the stored result", answer_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not store evaluation of answer %s", answer_id)
        raise
    finally:
        db.close()


class GradingService:
    def __init__(
        self,
        db: Session,
        evaluator: Optional[Any] = None,
        catalog: Optional[ExerciseCatalog] = None,
        session_factory: Optional[sessionmaker] = None,
        scheduler: Optional[Callable] = None
    ):
        self.db = db
        self.evaluator = evaluator
        self.catalog = catalog or ExerciseCatalog(db)
        self.session_factory = session_factory
        self.scheduler = scheduler or _default_scheduler
        self.attempts = AttemptService(db, catalog=self.catalog)

    def _owned_attempt(self, attempt_id, student_id) -> ExerciseAttempt:
        attempt = self.db.query(ExerciseAttempt).filter(
            ExerciseAttempt.id == attempt_id,
            ExerciseAttempt.student_id == student_id
        ).first()
        if not attempt:
            raise NotFoundError("attempt")
        return attempt

    def submit_answer(self, attempt_id, student_id, question_id: int, text: str) -> Answer:
        attempt = self._owned_attempt(attempt_id, student_id)
        if not text or not text.strip():
            raise ValidationFailure("Answer text is required", field="text")
        if not self.catalog.question_belongs_to_exercise(question_id, attempt.exercise_id):
            raise ValidationFailure("Question is not part of this exercise", field="question_id")

        answer = Answer(attempt_id=attempt.id, question_id=question_id, text=text)
        self.db.add(answer)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(answer)
        logger.info("Answer %s submitted to attempt %s", answer.id, attempt_id)

        question = self.catalog.get_question(question_id)
        if question.kind == QUESTION_KIND_CODE and self.evaluator is not None:
            if self.session_factory is None:
                raise RuntimeError("Background evaluation needs a session factory")
            self.scheduler(evaluate_answer, answer.id, self.session_factory, self.evaluator)

        return answer

    def list_answers(self, attempt_id, student_id) -> List[Answer]:
        attempt = self._owned_attempt(attempt_id, student_id)
        return self.db.query(Answer).filter(
            Answer.attempt_id == attempt.id
        ).order_by(Answer.submitted_at).all()

    def check_auto_completion(self, attempt_id, student_id) -> Dict[str, Any]:
        """Complete the attempt when every question is evaluated and approved.

        Otherwise report what is missing and leave the attempt untouched.
        """
        attempt = self.db.query(ExerciseAttempt).filter(
            ExerciseAttempt.id == attempt_id,
            ExerciseAttempt.student_id == student_id,
            ExerciseAttempt.status == ATTEMPT_IN_PROGRESS
        ).first()
        if not attempt:
            raise NotFoundError("attempt", "Attempt not found or already completed")

        total = self.catalog.count_questions(attempt.exercise_id)
        counts = grading_counts(attempt.answers)
        answered, approved = counts["answered"], counts["approved"]

        if answered == total and approved == total:
            self.attempts.complete(attempt)
            logger.info("Attempt %s auto-completed", attempt_id)
            return {
                "auto_completed": True,
                "attempt": attempt,
                "total_questions": total,
                "answered_questions": answered,
                "approved_questions": approved,
                "missing": 0,
                "needs_review": 0,
                "statistics": self.attempts.statistics(attempt),
                "elapsed_minutes": elapsed_minutes(attempt),
            }

        return {
            "auto_completed": False,
            "attempt": attempt,
            "total_questions": total,
            "answered_questions": answered,
            "approved_questions": approved,
            "missing": total - answered,
            "needs_review": answered - approved,
            "statistics": self.attempts.statistics(attempt),
            "elapsed_minutes": None,
        }
