"""Learning trail routes: modules, lessons and student progress."""
import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from classtrail.db.sessions import get_db
from classtrail.models.trail import Lesson, TrailModule
from classtrail.models.user import User, ROLE_ADMIN, ROLE_TEACHER
from classtrail.core.security import get_current_user, require_roles
from classtrail.services.progress_service import ProgressService
from classtrail.services.trail_service import TrailService


router = APIRouter(tags=["Trail"])

manager_only = require_roles(ROLE_TEACHER, ROLE_ADMIN)


# Request/Response schemas
class CreateModuleRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    icon: Optional[str] = Field(default=None, max_length=50)
    order: int = 0
    xp_reward: int = Field(default=0, ge=0)


class UpdateModuleRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    icon: Optional[str] = Field(default=None, max_length=50)
    order: Optional[int] = None
    xp_reward: Optional[int] = Field(default=None, ge=0)
    active: Optional[bool] = None


class CreateLessonRequest(BaseModel):
    exercise_id: int
    order: int = 0
    xp_reward: int = Field(default=10, ge=0)


class RecordProgressRequest(BaseModel):
    completed: bool
    score: int = Field(ge=0, le=100)


class ExerciseRef(BaseModel):
    id: int
    title: str


class LessonResponse(BaseModel):
    id: str
    module_id: str
    exercise_id: int
    order: int
    xp_reward: int


class ModuleResponse(BaseModel):
    id: str
    classroom_id: str
    title: str
    description: Optional[str]
    icon: Optional[str]
    order: int
    xp_reward: int
    active: bool


class TrailLesson(BaseModel):
    id: str
    order: int
    xp_reward: int
    exercise: Optional[ExerciseRef]


class TrailModuleResponse(BaseModel):
    id: str
    title: str
    description: Optional[str]
    icon: Optional[str]
    order: int
    xp_reward: int
    lessons: List[TrailLesson]


class LessonProgressItem(TrailLesson):
    completed: bool
    score: int
    xp_earned: int
    attempts: int


class ModuleProgressItem(BaseModel):
    id: str
    title: str
    description: Optional[str]
    icon: Optional[str]
    order: int
    xp_reward: int
    completed: bool
    lessons: List[LessonProgressItem]


class ProgressStatistics(BaseModel):
    total_lessons: int
    completed_lessons: int
    percent: int
    xp_total: int


class StudentProgressResponse(BaseModel):
    classroom_id: str
    student_id: str
    statistics: ProgressStatistics
    modules: List[ModuleProgressItem]


class RecordProgressResponse(BaseModel):
    lesson_id: str
    completed: bool
    score: int
    xp_earned: int
    attempts: int
    completed_at: Optional[str]


def _module_response(module: TrailModule) -> ModuleResponse:
    return ModuleResponse(
        id=str(module.id),
        classroom_id=str(module.classroom_id),
        title=module.title,
        description=module.description,
        icon=module.icon,
        order=module.order,
        xp_reward=module.xp_reward,
        active=module.active
    )


def _lesson_response(lesson: Lesson) -> LessonResponse:
    return LessonResponse(
        id=str(lesson.id),
        module_id=str(lesson.module_id),
        exercise_id=lesson.exercise_id,
        order=lesson.order,
        xp_reward=lesson.xp_reward
    )


def _stringify_ids(item: dict) -> dict:
    out = dict(item)
    out["id"] = str(item["id"])
    if "lessons" in item:
        out["lessons"] = [_stringify_ids(lesson) for lesson in item["lessons"]]
    return out


@router.get("/classrooms/{classroom_id}/trail", response_model=List[TrailModuleResponse])
def get_trail(
    classroom_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Active modules of the classroom in order, each with its ordered lessons."""
    trail = ProgressService(db).get_trail(classroom_id)
    return [_stringify_ids(module) for module in trail]


@router.post("/classrooms/{classroom_id}/modules", response_model=ModuleResponse, status_code=status.HTTP_201_CREATED)
def create_module(
    classroom_id: uuid.UUID,
    request: CreateModuleRequest,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    module = TrailService(db).create_module(
        classroom_id,
        current_user,
        request.title,
        description=request.description,
        icon=request.icon,
        order=request.order,
        xp_reward=request.xp_reward
    )
    return _module_response(module)


@router.put("/modules/{module_id}", response_model=ModuleResponse)
def update_module(
    module_id: uuid.UUID,
    request: UpdateModuleRequest,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    module = TrailService(db).update_module(module_id, current_user, request.model_dump(exclude_unset=True))
    return _module_response(module)


@router.delete("/modules/{module_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_module(
    module_id: uuid.UUID,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    TrailService(db).delete_module(module_id, current_user)
    return None


@router.post("/modules/{module_id}/lessons", response_model=LessonResponse, status_code=status.HTTP_201_CREATED)
def create_lesson(
    module_id: uuid.UUID,
    request: CreateLessonRequest,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    lesson = TrailService(db).create_lesson(
        module_id,
        current_user,
        request.exercise_id,
        order=request.order,
        xp_reward=request.xp_reward
    )
    return _lesson_response(lesson)


@router.delete("/lessons/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_lesson(
    lesson_id: uuid.UUID,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    TrailService(db).delete_lesson(lesson_id, current_user)
    return None


@router.get("/classrooms/{classroom_id}/progress", response_model=StudentProgressResponse)
def get_my_progress(
    classroom_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Trail of the classroom annotated with the current student's progress.

    Raises:
        404: not enrolled in the classroom
    """
    progress = ProgressService(db).get_student_progress(classroom_id, current_user.id)
    return StudentProgressResponse(
        classroom_id=str(progress["classroom_id"]),
        student_id=str(progress["student_id"]),
        statistics=progress["statistics"],
        modules=[_stringify_ids(module) for module in progress["modules"]]
    )


@router.post("/classrooms/{classroom_id}/lessons/{lesson_id}/progress", response_model=RecordProgressResponse)
def record_progress(
    classroom_id: uuid.UUID,
    lesson_id: uuid.UUID,
    request: RecordProgressRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    result = ProgressService(db).record_progress(
        classroom_id, lesson_id, current_user.id, request.completed, request.score
    )
    progress = result["progress"]
    return RecordProgressResponse(
        lesson_id=str(progress.lesson_id),
        completed=progress.completed,
        score=progress.score,
        xp_earned=result["xp_earned"],
        attempts=progress.attempts,
        completed_at=progress.completed_at.isoformat() if progress.completed_at else None
    )
