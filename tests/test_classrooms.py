import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query

from classtrail.core.exceptions import ConflictError, ExerciseAlreadyLinkedError, NotFoundError, ValidationFailure
from classtrail.models.classroom import Classroom
from classtrail.models.user import ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER
from classtrail.services.classroom_service import ClassroomService
from classtrail.services.enrollment_service import EnrollmentService
from classtrail.services.trail_service import TrailService


def test_create_classroom(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    classroom = ClassroomService(db).create(teacher.id, "  Python 101 ", "Intro course")

    assert classroom.name == "Python 101"
    assert classroom.active is True
    assert classroom.is_default is False
    assert len(classroom.access_code) == 8


def test_create_requires_a_name(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    with pytest.raises(ValidationFailure):
        ClassroomService(db).create(teacher.id, "   ")


def test_get_hides_other_owners_classrooms(db, make_user):
    owner, other = make_user(ROLE_TEACHER), make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    classroom = service.create(owner.id, "Data structures")

    assert service.get(classroom.id, requester_id=owner.id).id == classroom.id
    assert service.get(classroom.id).id == classroom.id
    with pytest.raises(NotFoundError):
        service.get(classroom.id, requester_id=other.id)


def test_set_default_leaves_exactly_one_default(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    first, second, third = (service.create(teacher.id, f"Class {i}") for i in range(3))

    service.set_default(first.id)
    service.set_default(second.id)
    service.set_default(third.id)
    service.set_default(third.id)

    db.expire_all()
    defaults = db.query(Classroom).filter(Classroom.is_default.is_(True)).all()
    assert [c.id for c in defaults] == [third.id]
    assert service.get_default().id == third.id


def test_set_default_rejects_inactive_classroom(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    classroom = service.create(teacher.id, "Archived")
    service.deactivate(classroom.id, teacher)

    with pytest.raises(ValidationFailure):
        service.set_default(classroom.id)


def test_get_default_without_default_is_none(db):
    assert ClassroomService(db).get_default() is None


def test_deactivating_the_default_clears_it(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    classroom = service.create(teacher.id, "Onboarding")
    service.set_default(classroom.id)

    archived = service.deactivate(classroom.id, teacher)

    assert archived.is_default is False
    assert service.get_default() is None


def test_update_to_inactive_clears_the_default(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    classroom = service.create(teacher.id, "Onboarding")
    service.set_default(classroom.id)

    updated = service.update(classroom.id, teacher, {"active": False})

    assert updated.is_default is False
    assert service.get_default() is None


def test_get_default_skips_inactive_rows(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    classroom = service.create(teacher.id, "Legacy")
    classroom.is_default = True
    classroom.active = False
    db.commit()

    assert service.get_default() is None


def test_storage_rejects_a_second_default(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    first, second = service.create(teacher.id, "One"), service.create(teacher.id, "Two")
    service.set_default(first.id)

    second.is_default = True
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()

    db.expire_all()
    assert service.get_default().id == first.id


def test_set_default_reports_a_concurrent_change(db, make_user, monkeypatch):
    teacher = make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    first, second = service.create(teacher.id, "One"), service.create(teacher.id, "Two")
    service.set_default(first.id)

    # the clear finds nothing, as when another writer sets a default right after it
    monkeypatch.setattr(Query, "update", lambda self, *args, **kwargs: 0)
    with pytest.raises(ConflictError) as exc:
        service.set_default(second.id)
    monkeypatch.undo()

    assert exc.value.error_code == "DEFAULT_CONFLICT"
    db.expire_all()
    assert service.get_default().id == first.id
    assert db.get(Classroom, second.id).is_default is False


def test_deactivate_by_non_owner_is_not_found_and_changes_nothing(db, make_user):
    owner, intruder = make_user(ROLE_TEACHER), make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    classroom = service.create(owner.id, "Compilers")

    with pytest.raises(NotFoundError):
        service.deactivate(classroom.id, intruder)

    db.expire_all()
    assert db.get(Classroom, classroom.id).active is True


def test_deactivate_by_admin_and_admin_mode(db, make_user):
    owner, admin = make_user(ROLE_TEACHER), make_user(ROLE_ADMIN)
    service = ClassroomService(db)
    first = service.create(owner.id, "One")
    second = service.create(owner.id, "Two")

    assert service.deactivate(first.id, admin).active is False
    assert service.deactivate(second.id).active is False


def test_any_teacher_manages_the_default_classroom(db, make_user):
    owner, teacher, student = make_user(ROLE_ADMIN), make_user(ROLE_TEACHER), make_user(ROLE_STUDENT)
    service = ClassroomService(db)
    classroom = service.create(owner.id, "Onboarding")
    service.set_default(classroom.id)

    updated = service.update(classroom.id, teacher, {"description": "Start here"})
    assert updated.description == "Start here"
    with pytest.raises(NotFoundError):
        service.update(classroom.id, student, {"description": "Hacked"})


def test_update_ignores_unknown_fields(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    classroom = service.create(teacher.id, "Networks")
    code = classroom.access_code

    updated = service.update(classroom.id, teacher, {"name": "Networking", "access_code": "AAAAAAAA"})
    assert updated.name == "Networking"
    assert updated.access_code == code


def test_list_for_owner_includes_counts(db, make_user, make_exercise):
    teacher, student = make_user(ROLE_TEACHER), make_user(ROLE_STUDENT)
    service = ClassroomService(db)
    classroom = service.create(teacher.id, "Databases")
    archived = service.create(teacher.id, "Old")
    service.deactivate(archived.id, teacher)

    exercise = make_exercise()
    service.link_exercise(classroom.id, teacher, exercise.id)
    TrailService(db).create_module(classroom.id, teacher, "SQL basics")
    EnrollmentService(db).join(student.id, classroom.access_code)

    items = service.list_for_owner(teacher.id)
    assert [item["classroom"].id for item in items] == [classroom.id]
    assert items[0]["counts"] == {"students": 1, "exercises": 1, "modules": 1}


def test_link_and_unlink_exercise(db, make_user, make_exercise):
    teacher = make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    classroom = service.create(teacher.id, "Algorithms")
    exercise = make_exercise()

    link = service.link_exercise(classroom.id, teacher, exercise.id, order=2, required=False)
    assert link.required is False
    with pytest.raises(ExerciseAlreadyLinkedError):
        service.link_exercise(classroom.id, teacher, exercise.id)
    assert [l.exercise_id for l in service.list_exercises(classroom.id)] == [exercise.id]

    service.unlink_exercise(classroom.id, teacher, exercise.id)
    assert service.list_exercises(classroom.id) == []
    with pytest.raises(NotFoundError):
        service.unlink_exercise(classroom.id, teacher, exercise.id)


def test_link_unknown_exercise(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    service = ClassroomService(db)
    classroom = service.create(teacher.id, "Algorithms")

    with pytest.raises(NotFoundError) as exc:
        service.link_exercise(classroom.id, teacher, 9999)
    assert exc.value.entity == "exercise"
