"""Exercise catalog models."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from classtrail.db.base import Base


QUESTION_KIND_CODE = "code"
QUESTION_KIND_TEXT = "text"


class Exercise(Base):
    __tablename__ = "exercises"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    statement = Column(Text, nullable=False)
    reference_answer = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    question_links = relationship(
        "ExerciseQuestion",
        back_populates="exercise",
        cascade="all, delete-orphan",
        order_by="ExerciseQuestion.order",
    )


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prompt = Column(Text, nullable=False)
    kind = Column(String(20), nullable=False, default=QUESTION_KIND_CODE)  # code / text
    reference_answer = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


class ExerciseQuestion(Base):
    __tablename__ = "exercise_questions"
    __table_args__ = (
        UniqueConstraint("exercise_id", "question_id", name="uq_exercise_questions_pair"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    exercise_id = Column(Integer, ForeignKey("exercises.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    order = Column(Integer, nullable=False, default=0)

    # Relationships
    exercise = relationship("Exercise", back_populates="question_links")
    question = relationship("Question")
