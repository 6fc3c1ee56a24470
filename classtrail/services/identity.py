"""Identity lookups for roster enrichment."""
from typing import Dict

from sqlalchemy.orm import Session

from classtrail.core.exceptions import NotFoundError
from classtrail.models.user import User


PLACEHOLDER_PROFILE = {"name": "User", "email": ""}


class UserDirectory:
    """Identity provider backed by the local users table.

    Anything exposing `get_profile(user_id) -> {"name", "email"}` can be used
    in its place.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user_id) -> Dict[str, str]:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFoundError("user")
        return {"name": user.name, "email": user.email}
