"""Course and module progress aggregation.

Course progress is recomputed from lesson progress on every recording call;
nothing here increments counters in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from markano.db.models import Course, CourseProgress, Lesson, LessonProgress, Module
from markano.db.upsert import insert_for
from markano.learning.errors import NotFoundError
from markano.learning.progress_rules import COMPLETED, NOT_STARTED, progress_percentage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CourseProgressResult:
    """Outcome of one course recomputation."""

    course_id: int
    lessons_completed: int
    total_lessons: int
    progress_percentage: int
    current_lesson_id: int | None
    just_completed: bool = False


def _course_lessons(course_id: int):
    return (
        select(Lesson.id)
        .join(Module, Lesson.module_id == Module.id)
        .where(Module.course_id == course_id, Lesson.is_active.is_(True))
    )


async def count_course_lessons(db: AsyncSession, user_id: int, course_id: int) -> tuple[int, int]:
    """(completed, total) over the course's active lessons."""
    lesson_ids = _course_lessons(course_id).subquery()

    total_result = await db.execute(select(func.count()).select_from(lesson_ids))
    total = int(total_result.scalar_one())

    completed_result = await db.execute(
        select(func.count(LessonProgress.id)).where(
            LessonProgress.user_id == user_id,
            LessonProgress.status == COMPLETED,
            LessonProgress.lesson_id.in_(select(lesson_ids.c.id)),
        )
    )
    completed = int(completed_result.scalar_one())
    return completed, total


async def find_current_lesson(db: AsyncSession, user_id: int, course_id: int) -> int | None:
    """First active lesson in module/lesson order that the learner has not completed."""
    result = await db.execute(
        select(Lesson.id)
        .join(Module, Lesson.module_id == Module.id)
        .outerjoin(
            LessonProgress,
            and_(LessonProgress.lesson_id == Lesson.id, LessonProgress.user_id == user_id),
        )
        .where(
            Module.course_id == course_id,
            Lesson.is_active.is_(True),
            or_(LessonProgress.id.is_(None), LessonProgress.status != COMPLETED),
        )
        .order_by(Module.order_index, Lesson.order_index, Lesson.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def recompute_course_progress(
    db: AsyncSession,
    user_id: int,
    course_id: int,
    completion_percentage: int = 100,
    now: datetime | None = None,
) -> CourseProgressResult:
    """Recount the course and upsert user_course_progress.

    completed_at is written once, the first time the percentage reaches the
    completion threshold, and is never cleared. ``just_completed`` is True
    only for that first write.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    completed, total = await count_course_lessons(db, user_id, course_id)
    percentage = progress_percentage(completed, total)
    current_lesson_id = await find_current_lesson(db, user_id, course_id)
    is_complete = total > 0 and percentage >= completion_percentage

    existing = await db.execute(
        select(CourseProgress.completed_at).where(
            CourseProgress.user_id == user_id,
            CourseProgress.course_id == course_id,
        )
    )
    previously_completed_at = existing.scalar_one_or_none()

    stmt = insert_for(db, CourseProgress).values(
        user_id=user_id,
        course_id=course_id,
        progress_percentage=percentage,
        lessons_completed=completed,
        total_lessons=total,
        current_lesson_id=current_lesson_id,
        started_at=now,
        completed_at=now if is_complete else None,
        last_accessed_at=now,
    )
    set_ = {
        "progress_percentage": stmt.excluded.progress_percentage,
        "lessons_completed": stmt.excluded.lessons_completed,
        "total_lessons": stmt.excluded.total_lessons,
        "current_lesson_id": stmt.excluded.current_lesson_id,
        "last_accessed_at": stmt.excluded.last_accessed_at,
    }
    if is_complete:
        set_["completed_at"] = func.coalesce(CourseProgress.completed_at, stmt.excluded.completed_at)
    await db.execute(stmt.on_conflict_do_update(index_elements=["user_id", "course_id"], set_=set_))

    just_completed = is_complete and previously_completed_at is None
    if just_completed:
        logger.info("User %s completed course %s", user_id, course_id)

    return CourseProgressResult(
        course_id=course_id,
        lessons_completed=completed,
        total_lessons=total,
        progress_percentage=percentage,
        current_lesson_id=current_lesson_id,
        just_completed=just_completed,
    )


async def is_module_complete(db: AsyncSession, user_id: int, module_id: int) -> bool:
    """True when the module has active lessons and the learner completed all of them."""
    total_result = await db.execute(
        select(func.count(Lesson.id)).where(
            Lesson.module_id == module_id,
            Lesson.is_active.is_(True),
        )
    )
    total = int(total_result.scalar_one())
    if total == 0:
        return False

    completed_result = await db.execute(
        select(func.count(LessonProgress.id))
        .join(Lesson, LessonProgress.lesson_id == Lesson.id)
        .where(
            LessonProgress.user_id == user_id,
            LessonProgress.status == COMPLETED,
            Lesson.module_id == module_id,
            Lesson.is_active.is_(True),
        )
    )
    return int(completed_result.scalar_one()) >= total


async def get_course_progress(db: AsyncSession, user_id: int, course_id: int) -> dict:
    """Stored course progress plus per-lesson status in course order."""
    course = await db.get(Course, course_id)
    if course is None:
        raise NotFoundError("Course not found")

    stored_result = await db.execute(
        select(CourseProgress).where(
            CourseProgress.user_id == user_id,
            CourseProgress.course_id == course_id,
        )
    )
    stored = stored_result.scalar_one_or_none()

    lessons_result = await db.execute(
        select(
            Lesson.id,
            Lesson.title,
            Module.id.label("module_id"),
            Module.title.label("module_title"),
            LessonProgress.status,
        )
        .join(Module, Lesson.module_id == Module.id)
        .outerjoin(
            LessonProgress,
            and_(LessonProgress.lesson_id == Lesson.id, LessonProgress.user_id == user_id),
        )
        .where(Module.course_id == course_id, Lesson.is_active.is_(True))
        .order_by(Module.order_index, Lesson.order_index, Lesson.id)
    )
    lessons = [
        {
            "lesson_id": row.id,
            "title": row.title,
            "module_id": row.module_id,
            "module_title": row.module_title,
            "status": row.status or NOT_STARTED,
        }
        for row in lessons_result
    ]

    return {
        "course_id": course.id,
        "course_title": course.title,
        "user_id": user_id,
        "progress": stored,
        "lessons": lessons,
    }
