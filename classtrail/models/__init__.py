"""Database models."""
from classtrail.models.user import User
from classtrail.models.classroom import Classroom, Enrollment, ClassroomExercise
from classtrail.models.trail import TrailModule, Lesson, LessonProgress
from classtrail.models.exercise import Exercise, Question, ExerciseQuestion
from classtrail.models.attempt import ExerciseAttempt, Answer, Criterion, Evaluation

__all__ = [
    "User",
    "Classroom",
    "Enrollment",
    "ClassroomExercise",
    "TrailModule",
    "Lesson",
    "LessonProgress",
    "Exercise",
    "Question",
    "ExerciseQuestion",
    "ExerciseAttempt",
    "Answer",
    "Criterion",
    "Evaluation",
]
