"""Answer submission routes."""
import uuid
from typing import List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session, sessionmaker
from pydantic import BaseModel, Field

from classtrail.db.sessions import get_db, get_session_factory
from classtrail.models.attempt import Answer
from classtrail.models.user import User
from classtrail.core.security import get_current_user
from classtrail.services.grading_service import GradingService
from classtrail.services.openai_service import OpenAIService, get_evaluator
from classtrail.services.scoring import compute_aggregate_score, is_approved


router = APIRouter(prefix="/answers", tags=["Answers"])


# Request/Response schemas
class SubmitAnswerRequest(BaseModel):
    attempt_id: uuid.UUID
    question_id: int
    text: str = Field(min_length=1)


class EvaluationResponse(BaseModel):
    criterion_id: int
    criterion: Optional[str]
    approved: bool
    score: float
    feedback: Optional[str]
    suggestions: List[str]
    evaluated_at: Optional[str]


class AnswerResponse(BaseModel):
    id: str
    attempt_id: str
    question_id: int
    text: str
    submitted_at: str
    evaluated: bool
    approved: bool
    score: float
    evaluations: List[EvaluationResponse]


def answer_response(answer: Answer) -> AnswerResponse:
    evaluations = list(answer.evaluations)
    return AnswerResponse(
        id=str(answer.id),
        attempt_id=str(answer.attempt_id),
        question_id=answer.question_id,
        text=answer.text,
        submitted_at=answer.submitted_at.isoformat(),
        evaluated=bool(evaluations),
        approved=is_approved(evaluations),
        score=compute_aggregate_score(evaluations),
        evaluations=[
            EvaluationResponse(
                criterion_id=e.criterion_id,
                criterion=e.criterion.name if e.criterion else None,
                approved=e.approved,
                score=e.score,
                feedback=e.feedback,
                suggestions=e.suggestions or [],
                evaluated_at=e.evaluated_at.isoformat() if e.evaluated_at else None
            )
            for e in evaluations
        ]
    )


@router.post("", response_model=AnswerResponse, status_code=status.HTTP_201_CREATED)
def submit_answer(
    request: SubmitAnswerRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    evaluator: OpenAIService = Depends(get_evaluator)
):
    """
    Submit an answer to a question of an attempt.

    The answer is stored right away. Programming answers are graded after
    the response is sent; poll the attempt answers to see the evaluation.
    """
    service = GradingService(
        db,
        evaluator=evaluator,
        session_factory=session_factory,
        scheduler=background_tasks.add_task
    )
    answer = service.submit_answer(request.attempt_id, current_user.id, request.question_id, request.text)
    return answer_response(answer)


@router.get("/attempt/{attempt_id}", response_model=List[AnswerResponse])
def list_attempt_answers(
    attempt_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    answers = GradingService(db).list_answers(attempt_id, current_user.id)
    return [answer_response(a) for a in answers]
