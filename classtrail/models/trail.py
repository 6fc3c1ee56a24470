"""Learning trail models."""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Text, Integer, Boolean, ForeignKey, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship
from classtrail.db.base import Base


class TrailModule(Base):
    """Ordered group of lessons inside a classroom trail. Soft-deleted via `active`."""

    __tablename__ = "trail_modules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    classroom_id = Column(Uuid, ForeignKey("classrooms.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    icon = Column(String(50))
    order = Column(Integer, nullable=False, default=0)
    xp_reward = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    classroom = relationship("Classroom", back_populates="modules")
    lessons = relationship(
        "Lesson",
        back_populates="module",
        cascade="all, delete-orphan",
        order_by="Lesson.order",
    )


class Lesson(Base):
    """Trail step bound to exactly one exercise of the catalog."""

    __tablename__ = "trail_lessons"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id = Column(Uuid, ForeignKey("trail_modules.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_id = Column(Integer, ForeignKey("exercises.id", ondelete="CASCADE"), nullable=False)
    order = Column(Integer, nullable=False, default=0)
    xp_reward = Column(Integer, nullable=False, default=10)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    module = relationship("TrailModule", back_populates="lessons")
    exercise = relationship("Exercise")
    progress = relationship("LessonProgress", back_populates="lesson", cascade="all, delete-orphan")


class LessonProgress(Base):
    """Per-enrollment outcome of one lesson. xp_earned is recomputed on every record."""

    __tablename__ = "lesson_progress"
    __table_args__ = (
        UniqueConstraint("enrollment_id", "lesson_id", name="uq_lesson_progress_enrollment_lesson"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    enrollment_id = Column(Uuid, ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, index=True)
    lesson_id = Column(Uuid, ForeignKey("trail_lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    completed = Column(Boolean, nullable=False, default=False)
    score = Column(Integer, nullable=False, default=0)  # 0 → 100
    xp_earned = Column(Integer, nullable=False, default=0)
    attempts = Column(Integer, nullable=False, default=1)
    completed_at = Column(DateTime)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    enrollment = relationship("Enrollment", back_populates="progress")
    lesson = relationship("Lesson", back_populates="progress")
