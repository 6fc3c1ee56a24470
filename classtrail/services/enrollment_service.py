"""Student enrollment in classrooms."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from classtrail.core.exceptions import AlreadyEnrolledError, NotFoundError, ValidationFailure
from classtrail.models.classroom import Classroom, Enrollment
from classtrail.services.access_codes import is_well_formed, normalize_access_code
from classtrail.services.classroom_service import ClassroomService
from classtrail.services.identity import PLACEHOLDER_PROFILE, UserDirectory
from classtrail.services.progress_service import ProgressService

logger = logging.getLogger(__name__)


class EnrollmentService:
    def __init__(self, db: Session, identity: Optional[Any] = None):
        self.db = db
        self.identity = identity or UserDirectory(db)
        self.progress = ProgressService(db)

    def join(self, student_id, raw_code: str) -> Classroom:
        code = normalize_access_code(raw_code)
        if not is_well_formed(code):
            raise ValidationFailure("Access code must be 8 letters or digits", field="code")

        classroom = self.db.query(Classroom).filter(Classroom.access_code == code).first()
        if not classroom:
            logger.warning("No classroom for access code %s", code)
            raise NotFoundError("classroom", "Invalid access code")

        return self._enroll(student_id, classroom)

    def ensure_default_enrollment(self, student_id) -> Classroom:
        """Enroll a student in the onboarding classroom, no code required."""
        classroom = ClassroomService(self.db).get_default()
        if not classroom:
            raise NotFoundError("classroom", "No default classroom configured")
        return self._enroll(student_id, classroom)

    def _enroll(self, student_id, classroom: Classroom) -> Classroom:
        if not classroom.active:
            raise NotFoundError("classroom", "This classroom is no longer active")

        enrollment = self._find(classroom.id, student_id)
        if enrollment:
            if enrollment.active:
                raise AlreadyEnrolledError()
            enrollment.active = True
            enrollment.enrolled_at = datetime.utcnow()
            try:
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                raise
            logger.info("Enrollment of %s in classroom %s reactivated", student_id, classroom.id)
            return classroom

        self.db.add(Enrollment(classroom_id=classroom.id, student_id=student_id, active=True))
        try:
            self.db.commit()
        except IntegrityError:
            # lost a race against an identical join
            self.db.rollback()
            raise AlreadyEnrolledError()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info("Student %s enrolled in classroom %s", student_id, classroom.id)
        return classroom

    def _find(self, classroom_id, student_id) -> Optional[Enrollment]:
        return self.db.query(Enrollment).filter(
            Enrollment.classroom_id == classroom_id,
            Enrollment.student_id == student_id
        ).first()

    def list_for_student(self, student_id) -> List[Dict[str, Any]]:
        enrollments = self.db.query(Enrollment).join(Classroom).filter(
            Enrollment.student_id == student_id,
            Enrollment.active.is_(True),
            Classroom.active.is_(True)
        ).order_by(Enrollment.enrolled_at.desc()).all()

        return [
            {
                "classroom": enrollment.classroom,
                "enrolled_at": enrollment.enrolled_at,
                "progress": self.progress.enrollment_stats(enrollment),
            }
            for enrollment in enrollments
        ]

    def list_roster(self, classroom_id, requester_id) -> List[Dict[str, Any]]:
        """Active students of an owned classroom with profile and progress.

        A failing profile lookup degrades that one entry to a placeholder.
        """
        classroom = ClassroomService(self.db).get(classroom_id, requester_id=requester_id)

        enrollments = self.db.query(Enrollment).filter(
            Enrollment.classroom_id == classroom.id,
            Enrollment.active.is_(True)
        ).order_by(Enrollment.enrolled_at.desc()).all()
        total_lessons = self.progress.count_lessons(classroom.id)

        roster = []
        for enrollment in enrollments:
            try:
                profile = self.identity.get_profile(enrollment.student_id)
            except Exception:
                logger.warning("Could not load profile of user %s", enrollment.student_id, exc_info=True)
                profile = dict(PLACEHOLDER_PROFILE)

            roster.append({
                "enrollment_id": enrollment.id,
                "student_id": enrollment.student_id,
                "enrolled_at": enrollment.enrolled_at,
                "profile": profile,
                "statistics": self.progress.enrollment_stats(enrollment, total_lessons=total_lessons),
            })
        return roster

    def remove(self, classroom_id, student_id, requester_id) -> None:
        classroom = ClassroomService(self.db).get(classroom_id, requester_id=requester_id)

        enrollment = self._find(classroom.id, student_id)
        if not enrollment or not enrollment.active:
            raise NotFoundError("enrollment", "Student is not enrolled in this classroom")

        enrollment.active = False
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info("Student %s removed from classroom %s", student_id, classroom_id)
