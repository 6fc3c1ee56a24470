"""Classroom and enrollment routes."""
import uuid
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from classtrail.db.sessions import get_db
from classtrail.models.classroom import Classroom, ClassroomExercise
from classtrail.models.user import User, ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER
from classtrail.core.security import get_current_user, require_roles
from classtrail.services.classroom_service import ClassroomService
from classtrail.services.enrollment_service import EnrollmentService


router = APIRouter(prefix="/classrooms", tags=["Classrooms"])

manager_only = require_roles(ROLE_TEACHER, ROLE_ADMIN)


# Request/Response schemas
class CreateClassroomRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None


class UpdateClassroomRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    active: Optional[bool] = None


class JoinRequest(BaseModel):
    code: str = Field(min_length=1, max_length=20)


class LinkExerciseRequest(BaseModel):
    exercise_id: int
    order: int = 0
    required: bool = True


class ClassroomResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    access_code: str
    owner_id: str
    is_default: bool
    active: bool
    created_at: str


class ClassroomCounts(BaseModel):
    students: int
    exercises: int
    modules: int


class OwnedClassroomResponse(ClassroomResponse):
    counts: ClassroomCounts


class ProgressStats(BaseModel):
    total_lessons: int
    completed_lessons: int
    percent: int
    xp_total: int


class EnrolledClassroomResponse(BaseModel):
    classroom: ClassroomResponse
    enrolled_at: str
    progress: ProgressStats


class JoinResponse(BaseModel):
    message: str
    classroom: ClassroomResponse


class Profile(BaseModel):
    name: str
    email: str


class RosterEntry(BaseModel):
    enrollment_id: str
    student_id: str
    enrolled_at: str
    profile: Profile
    statistics: ProgressStats


class ClassroomExerciseResponse(BaseModel):
    id: str
    exercise_id: int
    title: Optional[str]
    order: int
    required: bool


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def classroom_response(classroom: Classroom) -> ClassroomResponse:
    return ClassroomResponse(
        id=str(classroom.id),
        name=classroom.name,
        description=classroom.description,
        access_code=classroom.access_code,
        owner_id=str(classroom.owner_id),
        is_default=classroom.is_default,
        active=classroom.active,
        created_at=_iso(classroom.created_at)
    )


def _link_response(link: ClassroomExercise) -> ClassroomExerciseResponse:
    return ClassroomExerciseResponse(
        id=str(link.id),
        exercise_id=link.exercise_id,
        title=link.exercise.title if link.exercise else None,
        order=link.order,
        required=link.required
    )


@router.post("", response_model=ClassroomResponse, status_code=status.HTTP_201_CREATED)
def create_classroom(
    request: CreateClassroomRequest,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    """Create a classroom owned by the current teacher, with a fresh access code."""
    classroom = ClassroomService(db).create(current_user.id, request.name, request.description)
    return classroom_response(classroom)


@router.get("", response_model=List[OwnedClassroomResponse])
def list_my_classrooms(
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    items = ClassroomService(db).list_for_owner(current_user.id)
    return [
        OwnedClassroomResponse(**classroom_response(item["classroom"]).model_dump(), counts=item["counts"])
        for item in items
    ]


@router.get("/default", response_model=Optional[ClassroomResponse])
def get_default_classroom(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    classroom = ClassroomService(db).get_default()
    return classroom_response(classroom) if classroom else None


@router.get("/enrolled", response_model=List[EnrolledClassroomResponse])
def list_enrolled_classrooms(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Classrooms the current user is enrolled in, with trail progress."""
    items = EnrollmentService(db).list_for_student(current_user.id)
    return [
        EnrolledClassroomResponse(
            classroom=classroom_response(item["classroom"]),
            enrolled_at=_iso(item["enrolled_at"]),
            progress=item["progress"]
        )
        for item in items
    ]


@router.post("/join", response_model=JoinResponse)
def join_classroom(
    request: JoinRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Join a classroom with its access code.

    Raises:
        400: malformed code
        404: unknown code or inactive classroom
        409: already enrolled
    """
    classroom = EnrollmentService(db).join(current_user.id, request.code)
    return JoinResponse(message="Enrolled successfully", classroom=classroom_response(classroom))


@router.post("/join-default", response_model=JoinResponse)
def join_default_classroom(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    classroom = EnrollmentService(db).ensure_default_enrollment(current_user.id)
    return JoinResponse(message="Enrolled in the default classroom", classroom=classroom_response(classroom))


@router.get("/{classroom_id}", response_model=ClassroomResponse)
def get_classroom(
    classroom_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Get a classroom.

    Teachers and admins only see classrooms they own; students see any
    classroom (they reach it through an enrollment).
    """
    requester_id = None if current_user.role == ROLE_STUDENT else current_user.id
    classroom = ClassroomService(db).get(classroom_id, requester_id=requester_id)
    return classroom_response(classroom)


@router.put("/{classroom_id}", response_model=ClassroomResponse)
def update_classroom(
    classroom_id: uuid.UUID,
    request: UpdateClassroomRequest,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    classroom = ClassroomService(db).update(classroom_id, current_user, request.model_dump(exclude_unset=True))
    return classroom_response(classroom)


@router.delete("/{classroom_id}", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_classroom(
    classroom_id: uuid.UUID,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    ClassroomService(db).deactivate(classroom_id, current_user)
    return None


@router.post("/{classroom_id}/default", response_model=ClassroomResponse)
def set_default_classroom(
    classroom_id: uuid.UUID,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db)
):
    classroom = ClassroomService(db).set_default(classroom_id)
    return classroom_response(classroom)


@router.get("/{classroom_id}/students", response_model=List[RosterEntry])
def list_students(
    classroom_id: uuid.UUID,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    roster = EnrollmentService(db).list_roster(classroom_id, current_user.id)
    return [
        RosterEntry(
            enrollment_id=str(entry["enrollment_id"]),
            student_id=str(entry["student_id"]),
            enrolled_at=_iso(entry["enrolled_at"]),
            profile=entry["profile"],
            statistics=entry["statistics"]
        )
        for entry in roster
    ]


@router.delete("/{classroom_id}/students/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_student(
    classroom_id: uuid.UUID,
    student_id: uuid.UUID,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    EnrollmentService(db).remove(classroom_id, student_id, current_user.id)
    return None


@router.get("/{classroom_id}/exercises", response_model=List[ClassroomExerciseResponse])
def list_classroom_exercises(
    classroom_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    links = ClassroomService(db).list_exercises(classroom_id)
    return [_link_response(link) for link in links]


@router.post("/{classroom_id}/exercises", response_model=ClassroomExerciseResponse, status_code=status.HTTP_201_CREATED)
def link_classroom_exercise(
    classroom_id: uuid.UUID,
    request: LinkExerciseRequest,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    link = ClassroomService(db).link_exercise(
        classroom_id, current_user, request.exercise_id, order=request.order, required=request.required
    )
    return _link_response(link)


@router.delete("/{classroom_id}/exercises/{exercise_id}", status_code=status.HTTP_204_NO_CONTENT)
def unlink_classroom_exercise(
    classroom_id: uuid.UUID,
    exercise_id: int,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    ClassroomService(db).unlink_exercise(classroom_id, current_user, exercise_id)
    return None
