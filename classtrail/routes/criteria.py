"""Grading criteria routes."""
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from classtrail.db.sessions import get_db
from classtrail.models.attempt import Criterion
from classtrail.models.user import User, ROLE_ADMIN, ROLE_TEACHER
from classtrail.core.security import get_current_user, require_roles
from classtrail.services.criteria_service import CriteriaService


router = APIRouter(prefix="/criteria", tags=["Criteria"])

manager_only = require_roles(ROLE_TEACHER, ROLE_ADMIN)


# Request/Response schemas
class CreateCriterionRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    weight: float = Field(gt=0, le=1)
    description: Optional[str] = None


class UpdateCriterionRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    weight: Optional[float] = Field(default=None, gt=0, le=1)
    description: Optional[str] = None


class CriterionResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    weight: float

    class Config:
        from_attributes = True


def _response(criterion: Criterion) -> CriterionResponse:
    return CriterionResponse.model_validate(criterion)


@router.get("", response_model=List[CriterionResponse])
def list_criteria(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return [_response(c) for c in CriteriaService(db).list()]


@router.post("", response_model=CriterionResponse, status_code=status.HTTP_201_CREATED)
def create_criterion(
    request: CreateCriterionRequest,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    criterion = CriteriaService(db).create(request.name, request.weight, request.description)
    return _response(criterion)


@router.post("/defaults", response_model=List[CriterionResponse])
def ensure_default_criteria(
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    """Seed the default rubric if the store is empty; returns the current criteria."""
    return [_response(c) for c in CriteriaService(db).ensure_default_criteria()]


@router.get("/{criterion_id}", response_model=CriterionResponse)
def get_criterion(
    criterion_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _response(CriteriaService(db).get(criterion_id))


@router.put("/{criterion_id}", response_model=CriterionResponse)
def update_criterion(
    criterion_id: int,
    request: UpdateCriterionRequest,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    criterion = CriteriaService(db).update(criterion_id, request.model_dump(exclude_unset=True))
    return _response(criterion)


@router.delete("/{criterion_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_criterion(
    criterion_id: int,
    current_user: User = Depends(manager_only),
    db: Session = Depends(get_db)
):
    CriteriaService(db).delete(criterion_id)
    return None
