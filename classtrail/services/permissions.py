"""Capability checks shared by classroom and trail management."""
from classtrail.models.classroom import Classroom
from classtrail.models.user import User, ROLE_ADMIN, ROLE_TEACHER


def can_manage(actor: User, classroom: Classroom) -> bool:
    """Whether `actor` may edit `classroom` and its trail.

    Owners always can and admins always can. The default classroom is
    shared onboarding content, so any teacher may manage it as well.
    """
    if actor is None or classroom is None:
        return False
    if classroom.is_default and actor.role in (ROLE_TEACHER, ROLE_ADMIN):
        return True
    if classroom.owner_id == actor.id:
        return True
    return actor.role == ROLE_ADMIN
