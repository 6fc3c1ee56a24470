import pytest

from classtrail.core.exceptions import NotFoundError, ValidationFailure
from classtrail.models.trail import TrailModule
from classtrail.models.user import ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER
from classtrail.services.classroom_service import ClassroomService
from classtrail.services.trail_service import TrailService


@pytest.fixture
def owned(db, make_user):
    teacher = make_user(ROLE_TEACHER)
    classroom = ClassroomService(db).create(teacher.id, "Python 101")
    return teacher, classroom


def test_create_and_update_module(db, owned):
    teacher, classroom = owned
    service = TrailService(db)
    module = service.create_module(classroom.id, teacher, "Basics", icon="book", xp_reward=25)

    updated = service.update_module(module.id, teacher, {"title": "Fundamentals", "order": 3, "icon": None})
    assert updated.title == "Fundamentals"
    assert updated.order == 3
    assert updated.icon == "book"
    assert updated.xp_reward == 25


def test_module_validation(db, owned):
    teacher, classroom = owned
    service = TrailService(db)
    with pytest.raises(ValidationFailure):
        service.create_module(classroom.id, teacher, "  ")
    with pytest.raises(ValidationFailure):
        service.create_module(classroom.id, teacher, "Basics", xp_reward=-1)


def test_strangers_cannot_touch_the_trail(db, owned, make_user, make_exercise):
    teacher, classroom = owned
    stranger = make_user(ROLE_TEACHER)
    service = TrailService(db)
    module = service.create_module(classroom.id, teacher, "Basics")
    lesson = service.create_lesson(module.id, teacher, make_exercise().id)

    with pytest.raises(NotFoundError):
        service.create_module(classroom.id, stranger, "Mine now")
    with pytest.raises(NotFoundError):
        service.update_module(module.id, stranger, {"title": "Mine now"})
    with pytest.raises(NotFoundError):
        service.delete_module(module.id, stranger)
    with pytest.raises(NotFoundError):
        service.create_lesson(module.id, stranger, lesson.exercise_id)
    with pytest.raises(NotFoundError):
        service.delete_lesson(lesson.id, stranger)


def test_admin_manages_any_trail(db, owned, make_user):
    _, classroom = owned
    admin = make_user(ROLE_ADMIN)
    module = TrailService(db).create_module(classroom.id, admin, "Added by admin")
    assert module.classroom_id == classroom.id


def test_students_cannot_manage_the_default_trail(db, owned, make_user):
    teacher, classroom = owned
    ClassroomService(db).set_default(classroom.id)
    student = make_user(ROLE_STUDENT)

    with pytest.raises(NotFoundError):
        TrailService(db).create_module(classroom.id, student, "Nope")
    other_teacher = make_user(ROLE_TEACHER)
    assert TrailService(db).create_module(classroom.id, other_teacher, "Shared").title == "Shared"


def test_delete_module_is_soft(db, owned):
    teacher, classroom = owned
    service = TrailService(db)
    module = service.create_module(classroom.id, teacher, "Basics")

    service.delete_module(module.id, teacher)

    db.expire_all()
    stored = db.get(TrailModule, module.id)
    assert stored is not None
    assert stored.active is False


def test_lesson_needs_a_known_exercise(db, owned):
    teacher, classroom = owned
    service = TrailService(db)
    module = service.create_module(classroom.id, teacher, "Basics")

    with pytest.raises(NotFoundError):
        service.create_lesson(module.id, teacher, 4242)


def test_lesson_defaults(db, owned, make_exercise):
    teacher, classroom = owned
    service = TrailService(db)
    module = service.create_module(classroom.id, teacher, "Basics")
    lesson = service.create_lesson(module.id, teacher, make_exercise().id)
    assert lesson.xp_reward == 10
    assert lesson.order == 0
