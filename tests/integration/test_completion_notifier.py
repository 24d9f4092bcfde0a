"""MessagingNotifier: recipient lookup, display-name fallback, skip without a handle."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from markano.db.models import Student
from markano.messaging.notifier import MessagingNotifier
from tests.conftest import CourseFixture


@pytest.fixture
def messaging() -> MagicMock:
    service = MagicMock()
    service.send_template = AsyncMock(return_value=True)
    return service


@pytest.mark.asyncio
async def test_lesson_completed_sends_template(db_session, course: CourseFixture, messaging):
    notifier = MessagingNotifier(db_session, service=messaging)

    assert await notifier.lesson_completed(course.student_id, "Loops", "Python Fundamentals") is True
    messaging.send_template.assert_awaited_once_with(
        "+252 61 1234567",
        "send-lesson-completion",
        {"display_name": "Hodan Ali", "lesson_title": "Loops", "course_title": "Python Fundamentals"},
    )


@pytest.mark.asyncio
async def test_module_and_course_templates(db_session, course: CourseFixture, messaging):
    notifier = MessagingNotifier(db_session, service=messaging)

    await notifier.module_completed(course.student_id, "Basics", "Python Fundamentals")
    await notifier.course_completed(course.student_id, "Python Fundamentals")

    names = [call.args[1] for call in messaging.send_template.await_args_list]
    assert names == ["send-module-completion", "send-course-completion"]


@pytest.mark.asyncio
async def test_missing_handle_skips_send(db_session, course: CourseFixture, messaging):
    notifier = MessagingNotifier(db_session, service=messaging)

    assert await notifier.course_completed(course.silent_student_id, "Python Fundamentals") is False
    assert await notifier.course_completed(987654, "Python Fundamentals") is False
    messaging.send_template.assert_not_awaited()


@pytest.mark.asyncio
async def test_empty_name_falls_back(db_session, course: CourseFixture, messaging):
    student = Student(full_name="   ", whatsapp_number="252615550000")
    db_session.add(student)
    await db_session.commit()

    notifier = MessagingNotifier(db_session, service=messaging)
    await notifier.lesson_completed(student.id, "Loops", "Python Fundamentals")

    context = messaging.send_template.await_args.args[2]
    assert context["display_name"] == "Arday"
