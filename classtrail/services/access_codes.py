"""Classroom access code generation."""
import logging
import secrets
import string
from typing import Callable, Optional

from sqlalchemy.orm import Session

from classtrail.core.config import settings
from classtrail.core.exceptions import CodeExhaustionError
from classtrail.models.classroom import Classroom

logger = logging.getLogger(__name__)

ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_access_code(length: Optional[int] = None) -> str:
    """Random uppercase alphanumeric code, built from two halves."""
    length = length or settings.ACCESS_CODE_LENGTH
    half = length // 2
    first = "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(half))
    second = "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(length - half))
    return first + second


def normalize_access_code(raw_code: str) -> str:
    return (raw_code or "").strip().upper()


def is_well_formed(code: str) -> bool:
    return (
        len(code) == settings.ACCESS_CODE_LENGTH
        and all(c in ACCESS_CODE_ALPHABET for c in code)
    )


def allocate_unique_code(
    db: Session,
    max_attempts: Optional[int] = None,
    generator: Callable[[], str] = generate_access_code,
) -> str:
    """Return a code no classroom uses yet.

    A collision in a 36^8 space is practically impossible, so running out of
    attempts means something is wrong with the store, not with luck.
    """
    max_attempts = max_attempts or settings.ACCESS_CODE_MAX_ATTEMPTS

    for attempt in range(1, max_attempts + 1):
        code = generator()
        taken = db.query(Classroom.id).filter(Classroom.access_code == code).first()
        if not taken:
            return code
        logger.warning("Access code collision on attempt %d", attempt)

    logger.error("Gave up allocating an access code after %d attempts", max_attempts)
    raise CodeExhaustionError(max_attempts)
