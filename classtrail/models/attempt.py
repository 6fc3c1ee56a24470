"""Exercise attempt and grading models."""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Text, Integer, Boolean, Float, ForeignKey, JSON, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship
from classtrail.db.base import Base


ATTEMPT_IN_PROGRESS = "in_progress"
ATTEMPT_COMPLETED = "completed"
ATTEMPT_NOT_STARTED = "not_started"  # reported by status queries, never stored


class ExerciseAttempt(Base):
    """One student's engagement with one exercise. `completed` is terminal."""

    __tablename__ = "exercise_attempts"
    __table_args__ = (
        UniqueConstraint("student_id", "exercise_id", name="uq_exercise_attempts_student_exercise"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_id = Column(Integer, ForeignKey("exercises.id", ondelete="CASCADE"), nullable=False, index=True)
    started_at = Column(DateTime, default=datetime.utcnow)
    finished_at = Column(DateTime)
    status = Column(String(20), nullable=False, default=ATTEMPT_IN_PROGRESS)

    # Relationships
    student = relationship("User", back_populates="attempts")
    exercise = relationship("Exercise")
    answers = relationship(
        "Answer",
        back_populates="attempt",
        cascade="all, delete-orphan",
        order_by="Answer.submitted_at",
    )


class Answer(Base):
    """Submitted answer. Kept as history: several rows per (attempt, question) are allowed."""

    __tablename__ = "answers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    attempt_id = Column(Uuid, ForeignKey("exercise_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    text = Column(Text, nullable=False)
    submitted_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    attempt = relationship("ExerciseAttempt", back_populates="answers")
    question = relationship("Question")
    evaluations = relationship("Evaluation", back_populates="answer", cascade="all, delete-orphan")


class Criterion(Base):
    """Weighted rubric dimension used to aggregate evaluations."""

    __tablename__ = "criteria"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text)
    weight = Column(Float, nullable=False, default=1.0)  # (0, 1]
    created_at = Column(DateTime, default=datetime.utcnow)


class Evaluation(Base):
    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint("answer_id", "criterion_id", name="uq_evaluations_answer_criterion"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    answer_id = Column(Uuid, ForeignKey("answers.id", ondelete="CASCADE"), nullable=False, index=True)
    criterion_id = Column(Integer, ForeignKey("criteria.id", ondelete="CASCADE"), nullable=False)
    approved = Column(Boolean, nullable=False, default=False)
    score = Column(Float, nullable=False, default=0.0)  # 0 → 100
    feedback = Column(Text)
    suggestions = Column(JSON, default=list)
    evaluated_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    answer = relationship("Answer", back_populates="evaluations")
    criterion = relationship("Criterion")
