"""Classroom models."""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Text, Integer, Boolean, ForeignKey, Index, UniqueConstraint, Uuid, text,
)
from sqlalchemy.orm import relationship
from classtrail.db.base import Base


class Classroom(Base):
    """Cohort container owned by a teacher and joined through its access code."""

    __tablename__ = "classrooms"
    __table_args__ = (
        # At most one row may carry is_default = true.
        Index(
            "uq_classrooms_single_default",
            "is_default",
            unique=True,
            postgresql_where=text("is_default IS TRUE"),
            sqlite_where=text("is_default = 1"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(120), nullable=False)
    description = Column(Text)
    access_code = Column(String(8), unique=True, nullable=False, index=True)
    owner_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_default = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = relationship("User", back_populates="classrooms")
    enrollments = relationship("Enrollment", back_populates="classroom", cascade="all, delete-orphan")
    modules = relationship("TrailModule", back_populates="classroom", cascade="all, delete-orphan")
    exercise_links = relationship("ClassroomExercise", back_populates="classroom", cascade="all, delete-orphan")


class Enrollment(Base):
    """A student's membership in a classroom. Never deleted, only deactivated."""

    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("classroom_id", "student_id", name="uq_enrollments_classroom_student"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    classroom_id = Column(Uuid, ForeignKey("classrooms.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    enrolled_at = Column(DateTime, default=datetime.utcnow)
    active = Column(Boolean, nullable=False, default=True)

    # Relationships
    classroom = relationship("Classroom", back_populates="enrollments")
    progress = relationship("LessonProgress", back_populates="enrollment", cascade="all, delete-orphan")


class ClassroomExercise(Base):
    """Exercise linked to a classroom outside of the trail."""

    __tablename__ = "classroom_exercises"
    __table_args__ = (
        UniqueConstraint("classroom_id", "exercise_id", name="uq_classroom_exercises_pair"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    classroom_id = Column(Uuid, ForeignKey("classrooms.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_id = Column(Integer, ForeignKey("exercises.id", ondelete="CASCADE"), nullable=False)
    order = Column(Integer, nullable=False, default=0)
    required = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    classroom = relationship("Classroom", back_populates="exercise_links")
    exercise = relationship("Exercise")
