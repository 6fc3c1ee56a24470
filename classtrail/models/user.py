"""User model."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Uuid
from sqlalchemy.orm import relationship
from classtrail.db.base import Base


ROLE_STUDENT = "student"
ROLE_TEACHER = "teacher"
ROLE_ADMIN = "admin"


class User(Base):
    """Platform user. `role` drives classroom management permissions."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    email = Column(String(150), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_STUDENT)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    classrooms = relationship("Classroom", back_populates="owner")
    attempts = relationship("ExerciseAttempt", back_populates="student")
