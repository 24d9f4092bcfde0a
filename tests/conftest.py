"""Shared test fixtures.

Every test that touches the database gets a fresh in-memory SQLite
database with the schema created from model metadata and the level and
badge tables seeded.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from dataclasses import dataclass

os.environ["MARKANO_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MARKANO_MESSAGING_PROVIDER"] = "log"
os.environ["MARKANO_LOG_FORMAT"] = "console"

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from markano.config import get_settings
from markano.database import close_db, get_engine, get_session, init_db
from markano.db.base import Base
from markano.db.models import Course, Lesson, Module, Student
from markano.gamification.seed import seed_badges, seed_levels
from markano.messaging.service import reset_messaging_service

get_settings.cache_clear()


@dataclass
class CourseFixture:
    """Ids of the seeded course: 2 modules x 2 lessons, first lesson worth 50 XP."""

    course_id: int
    module_ids: list[int]
    lesson_ids: list[int]
    student_id: int
    silent_student_id: int


class FakeBadgeChecker:
    """Records calls; optionally raises."""

    def __init__(self, awarded: list[str] | None = None, error: Exception | None = None) -> None:
        self.awarded = awarded or []
        self.error = error
        self.calls: list[int] = []

    async def check_milestones(self, user_id: int) -> list[str]:
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return list(self.awarded)


class FakeNotifier:
    """Records every notification; optionally raises on each."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple] = []

    async def _record(self, *call: object) -> bool:
        self.calls.append(call)
        if self.error is not None:
            raise self.error
        return True

    async def lesson_completed(self, user_id: int, lesson_title: str, course_title: str) -> bool:
        return await self._record("lesson", user_id, lesson_title, course_title)

    async def module_completed(self, user_id: int, module_title: str, course_title: str) -> bool:
        return await self._record("module", user_id, module_title, course_title)

    async def course_completed(self, user_id: int, course_title: str) -> bool:
        return await self._record("course", user_id, course_title)

    def kinds(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh seeded database and a session on it."""
    settings = get_settings()
    await init_db(settings.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async for session in get_session():
        await seed_levels(session)
        await seed_badges(session)
        yield session
        break

    reset_messaging_service()
    await close_db()


@pytest_asyncio.fixture
async def course(db_session: AsyncSession) -> CourseFixture:
    """Python Fundamentals: Basics (Variables, Loops) then Functions (Defining, Returning)."""
    db = db_session
    course = Course(title="Python Fundamentals", description="Start here")
    db.add(course)
    await db.flush()

    basics = Module(course_id=course.id, title="Basics", order_index=1)
    functions = Module(course_id=course.id, title="Functions", order_index=2)
    db.add_all([basics, functions])
    await db.flush()

    lessons = [
        Lesson(module_id=basics.id, title="Variables", order_index=1, xp_reward=50),
        Lesson(module_id=basics.id, title="Loops", order_index=2, xp_reward=10),
        Lesson(module_id=functions.id, title="Defining Functions", order_index=1, xp_reward=10),
        Lesson(module_id=functions.id, title="Returning Values", order_index=2, xp_reward=10),
    ]
    db.add_all(lessons)

    student = Student(full_name="Hodan Ali", whatsapp_number="+252 61 1234567", email="hodan@example.com")
    silent = Student(full_name=None, whatsapp_number=None, email="nophone@example.com")
    db.add_all([student, silent])
    await db.commit()

    return CourseFixture(
        course_id=course.id,
        module_ids=[basics.id, functions.id],
        lesson_ids=[lesson.id for lesson in lessons],
        student_id=student.id,
        silent_student_id=silent.id,
    )


@pytest.fixture
def badge_checker() -> FakeBadgeChecker:
    return FakeBadgeChecker()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def app(db_session: AsyncSession) -> FastAPI:
    """Fresh app sharing the test database (lifespan not run)."""
    from markano.main import create_app

    return create_app()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
