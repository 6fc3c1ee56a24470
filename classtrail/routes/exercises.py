"""Exercise catalog routes."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from classtrail.db.sessions import get_db
from classtrail.models.user import User, ROLE_ADMIN
from classtrail.core.security import require_roles
from classtrail.services.catalog import ExerciseCatalog


router = APIRouter(prefix="/exercises", tags=["Exercises"])


@router.delete("/{exercise_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_exercise(
    exercise_id: int,
    current_user: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db)
):
    """
    Delete an exercise together with its attempts, answers and evaluations.

    Admin only.
    """
    ExerciseCatalog(db).delete_exercise(exercise_id)
    return None
