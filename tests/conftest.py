import os
import tempfile
import uuid

# Settings are read on first import, so point the app at a throwaway database first.
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.mkdtemp(), "classtrail_app.db")
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from classtrail.db.base import Base
import classtrail.models  # noqa: F401
from classtrail.models.attempt import Criterion
from classtrail.models.exercise import Exercise, ExerciseQuestion, Question, QUESTION_KIND_CODE
from classtrail.models.user import User, ROLE_STUDENT
from classtrail.services.openai_service import EvaluationResult


class FakeEvaluator:
    """Stands in for the OpenAI evaluator; returns `result` or raises `error`."""

    def __init__(self, result=None, error=None):
        self.result = result or EvaluationResult(approved=True, score=90.0, feedback="Well done", suggestions=[])
        self.error = error
        self.calls = []

    def evaluate(self, statement, answer_text, reference_answer=None):
        self.calls.append((statement, answer_text, reference_answer))
        if self.error is not None:
            raise self.error
        return self.result


def run_inline(fn, *args):
    fn(*args)


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so background work can open its own connection."""
    db_path = tmp_path / "test_classtrail.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make(role=ROLE_STUDENT, name=None):
        suffix = uuid.uuid4().hex[:8]
        user = User(
            name=name or f"{role}-{suffix}",
            email=f"{role}-{suffix}@example.com",
            password_hash="not-a-real-hash",
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_exercise(db):
    """Create an exercise with `questions` questions of the given kind."""
    def _make(questions=2, kind=QUESTION_KIND_CODE, title="FizzBuzz"):
        exercise = Exercise(
            title=title,
            statement="Print the numbers from 1 to 100, replacing multiples of 3 and 5.",
            reference_answer="for i in range(1, 101): ...",
        )
        db.add(exercise)
        db.flush()
        for i in range(questions):
            question = Question(prompt=f"Part {i + 1}", kind=kind)
            db.add(question)
            db.flush()
            db.add(ExerciseQuestion(exercise_id=exercise.id, question_id=question.id, order=i))
        db.commit()
        db.refresh(exercise)
        return exercise
    return _make


@pytest.fixture
def make_criteria(db):
    def _make(*weights):
        criteria = []
        for i, weight in enumerate(weights):
            criterion = Criterion(name=f"Criterion {i + 1}", weight=weight)
            db.add(criterion)
            criteria.append(criterion)
        db.commit()
        for criterion in criteria:
            db.refresh(criterion)
        return criteria
    return _make


@pytest.fixture
def fake_evaluator():
    return FakeEvaluator


@pytest.fixture
def inline_scheduler():
    return run_inline


@pytest.fixture
def other_session(session_factory):
    """A second connection, standing in for a concurrent request."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def stale_lookup(monkeypatch):
    """Make `obj.name` miss on its first call, as if a concurrent writer
    committed right after the service looked."""
    def _patch(obj, name):
        real = getattr(obj, name)
        calls = []

        def lookup(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return None
            return real(*args, **kwargs)

        monkeypatch.setattr(obj, name, lookup)
    return _patch
