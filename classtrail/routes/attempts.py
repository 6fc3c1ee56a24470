"""Exercise attempt routes."""
import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel

from classtrail.db.sessions import get_db
from classtrail.models.attempt import ExerciseAttempt
from classtrail.models.user import User
from classtrail.core.security import get_current_user
from classtrail.services.attempt_service import AttemptService
from classtrail.services.grading_service import GradingService


router = APIRouter(prefix="/attempts", tags=["Attempts"])


# Response schemas
class AttemptStatistics(BaseModel):
    total_questions: int
    answered_questions: int
    approved_questions: int
    completion_percent: int
    approval_percent: int


class AttemptResponse(BaseModel):
    id: str
    student_id: str
    exercise_id: int
    status: str
    started_at: Optional[str]
    finished_at: Optional[str]


class FinalizeResponse(BaseModel):
    attempt: AttemptResponse
    statistics: AttemptStatistics
    elapsed_minutes: int


class StatusResponse(BaseModel):
    status: str
    exercise_id: int
    attempt: Optional[AttemptResponse]
    statistics: Optional[AttemptStatistics]


class CompletedAttemptResponse(BaseModel):
    attempt: AttemptResponse
    statistics: AttemptStatistics


class SummaryResponse(BaseModel):
    total_exercises: int
    completed_exercises: int
    in_progress_exercises: int
    completion_percent: int
    total_answers: int
    approved_answers: int
    approval_percent: int


class CompletionCheckResponse(BaseModel):
    auto_completed: bool
    attempt: AttemptResponse
    total_questions: int
    answered_questions: int
    approved_questions: int
    missing: int
    needs_review: int
    statistics: AttemptStatistics
    elapsed_minutes: Optional[int]


def attempt_response(attempt: ExerciseAttempt) -> AttemptResponse:
    return AttemptResponse(
        id=str(attempt.id),
        student_id=str(attempt.student_id),
        exercise_id=attempt.exercise_id,
        status=attempt.status,
        started_at=attempt.started_at.isoformat() if attempt.started_at else None,
        finished_at=attempt.finished_at.isoformat() if attempt.finished_at else None
    )


@router.get("", response_model=List[AttemptResponse])
def list_my_attempts(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    attempts = AttemptService(db).list_for_student(current_user.id)
    return [attempt_response(a) for a in attempts]


@router.get("/completed", response_model=List[CompletedAttemptResponse])
def list_completed_attempts(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    items = AttemptService(db).list_completed(current_user.id)
    return [
        CompletedAttemptResponse(attempt=attempt_response(item["attempt"]), statistics=item["statistics"])
        for item in items
    ]


@router.get("/summary", response_model=SummaryResponse)
def get_summary(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Aggregate attempt and answer counts of the current student."""
    return SummaryResponse(**AttemptService(db).summary(current_user.id))


@router.post("/{exercise_id}/start", response_model=AttemptResponse)
def start_attempt(
    exercise_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Start working on an exercise.

    Idempotent: calling it again returns the existing attempt.
    """
    attempt = AttemptService(db).start(current_user.id, exercise_id)
    return attempt_response(attempt)


@router.post("/{exercise_id}/finalize", response_model=FinalizeResponse)
def finalize_attempt(
    exercise_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Complete the attempt on an exercise.

    Raises:
        404: unknown exercise
        409: attempt already completed
    """
    result = AttemptService(db).finalize(current_user.id, exercise_id)
    return FinalizeResponse(
        attempt=attempt_response(result["attempt"]),
        statistics=result["statistics"],
        elapsed_minutes=result["elapsed_minutes"]
    )


@router.get("/{exercise_id}/status", response_model=StatusResponse)
def get_attempt_status(
    exercise_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    result = AttemptService(db).status(current_user.id, exercise_id)
    return StatusResponse(
        status=result["status"],
        exercise_id=result["exercise_id"],
        attempt=attempt_response(result["attempt"]) if result["attempt"] else None,
        statistics=result["statistics"]
    )


@router.post("/{attempt_id}/check-completion", response_model=CompletionCheckResponse)
def check_completion(
    attempt_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    result = GradingService(db).check_auto_completion(attempt_id, current_user.id)
    result["attempt"] = attempt_response(result["attempt"])
    return CompletionCheckResponse(**result)
