import uuid
from datetime import timedelta

import pytest

from classtrail.core.exceptions import AlreadyCompletedError, NotFoundError
from classtrail.models.attempt import ATTEMPT_COMPLETED, ATTEMPT_IN_PROGRESS, ATTEMPT_NOT_STARTED, ExerciseAttempt
from classtrail.services.attempt_service import AttemptService, elapsed_minutes


def test_start_is_idempotent(db, make_user, make_exercise):
    student, exercise = make_user(), make_exercise()
    service = AttemptService(db)

    first = service.start(student.id, exercise.id)
    second = service.start(student.id, exercise.id)

    assert first.id == second.id
    assert first.status == ATTEMPT_IN_PROGRESS
    assert db.query(ExerciseAttempt).count() == 1


def test_start_validates_references(db, make_user, make_exercise):
    student, exercise = make_user(), make_exercise()
    service = AttemptService(db)

    with pytest.raises(NotFoundError) as exc:
        service.start(uuid.uuid4(), exercise.id)
    assert exc.value.entity == "student"
    with pytest.raises(NotFoundError) as exc:
        service.start(student.id, 999)
    assert exc.value.entity == "exercise"


def test_finalize_completes_started_attempt(db, make_user, make_exercise):
    student, exercise = make_user(), make_exercise()
    service = AttemptService(db)
    attempt = service.start(student.id, exercise.id)

    result = service.finalize(student.id, exercise.id)

    assert result["attempt"].id == attempt.id
    assert result["attempt"].status == ATTEMPT_COMPLETED
    assert result["attempt"].finished_at is not None
    assert result["statistics"]["total_questions"] == 2
    assert result["statistics"]["answered_questions"] == 0


def test_finalize_without_start_creates_completed_attempt(db, make_user, make_exercise):
    student, exercise = make_user(), make_exercise()

    result = AttemptService(db).finalize(student.id, exercise.id)

    assert result["attempt"].status == ATTEMPT_COMPLETED
    assert result["elapsed_minutes"] == 0


def test_finalize_twice_fails(db, make_user, make_exercise):
    student, exercise = make_user(), make_exercise()
    service = AttemptService(db)
    service.start(student.id, exercise.id)
    first = service.finalize(student.id, exercise.id)
    finished_at = first["attempt"].finished_at

    with pytest.raises(AlreadyCompletedError):
        service.finalize(student.id, exercise.id)

    db.expire_all()
    attempt = db.query(ExerciseAttempt).one()
    assert attempt.status == ATTEMPT_COMPLETED
    assert attempt.finished_at == finished_at


def test_status(db, make_user, make_exercise):
    student, exercise = make_user(), make_exercise()
    service = AttemptService(db)

    assert service.status(student.id, exercise.id)["status"] == ATTEMPT_NOT_STARTED
    service.start(student.id, exercise.id)
    status = service.status(student.id, exercise.id)
    assert status["status"] == ATTEMPT_IN_PROGRESS
    assert status["statistics"]["completion_percent"] == 0


def test_elapsed_minutes_rounds_half_up(db, make_user, make_exercise):
    student, exercise = make_user(), make_exercise()
    attempt = AttemptService(db).start(student.id, exercise.id)
    attempt.finished_at = attempt.started_at + timedelta(minutes=2, seconds=30)
    assert elapsed_minutes(attempt) == 3

    attempt.finished_at = None
    assert elapsed_minutes(attempt) == 0


def test_listings_and_summary(db, make_user, make_exercise):
    student = make_user()
    first, second, third = make_exercise(), make_exercise(), make_exercise()
    service = AttemptService(db)
    service.start(student.id, first.id)
    service.start(student.id, second.id)
    service.finalize(student.id, second.id)
    service.finalize(student.id, third.id)

    assert len(service.list_for_student(student.id)) == 3
    completed = service.list_completed(student.id)
    assert {item["attempt"].exercise_id for item in completed} == {second.id, third.id}

    summary = service.summary(student.id)
    assert summary["total_exercises"] == 3
    assert summary["completed_exercises"] == 2
    assert summary["in_progress_exercises"] == 1
    assert summary["completion_percent"] == 67
    assert summary["total_answers"] == 0
    assert summary["approval_percent"] == 0


def test_start_losing_a_race_returns_the_stored_attempt(db, other_session, stale_lookup, make_user, make_exercise):
    student, exercise = make_user(), make_exercise()
    concurrent = ExerciseAttempt(student_id=student.id, exercise_id=exercise.id, status=ATTEMPT_IN_PROGRESS)
    other_session.add(concurrent)
    other_session.commit()

    service = AttemptService(db)
    stale_lookup(service, "_find")
    attempt = service.start(student.id, exercise.id)

    assert attempt.id == concurrent.id
    assert db.query(ExerciseAttempt).count() == 1


def test_finalize_without_start_completes_a_concurrently_started_attempt(
    db, other_session, stale_lookup, make_user, make_exercise
):
    student, exercise = make_user(), make_exercise()
    concurrent = ExerciseAttempt(student_id=student.id, exercise_id=exercise.id, status=ATTEMPT_IN_PROGRESS)
    other_session.add(concurrent)
    other_session.commit()

    service = AttemptService(db)
    stale_lookup(service, "_find")
    result = service.finalize(student.id, exercise.id)

    assert result["attempt"].id == concurrent.id
    assert result["attempt"].status == ATTEMPT_COMPLETED
    assert db.query(ExerciseAttempt).count() == 1
