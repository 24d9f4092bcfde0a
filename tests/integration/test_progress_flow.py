"""Progress recording flow: upsert, XP, streak, course aggregation, side effects."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from markano.db.models import CourseProgress, DailyStreak, LessonProgress, XPLedger, XPSummary
from markano.learning.errors import NotFoundError, ValidationError
from markano.learning.progress_service import ProgressService
from tests.conftest import CourseFixture, FakeBadgeChecker, FakeNotifier

ALL_DONE = {"video_watched": True, "quiz_completed": True, "task_completed": True}


def _service(db: AsyncSession, badge_checker=None, notifier=None) -> ProgressService:
    return ProgressService(db, redis=None, badge_checker=badge_checker, notifier=notifier)


async def _count(db: AsyncSession, model, *where) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*where))
    return int(result.scalar_one())


class TestRecording:
    @pytest.mark.asyncio
    async def test_first_post_creates_one_row(self, db_session, course: CourseFixture):
        outcome = await _service(db_session).record_progress(
            course.student_id, course.lesson_ids[0], video_watched=True, video_progress_percentage=40
        )

        assert outcome.progress.status == "in_progress"
        assert outcome.progress.video_watched is True
        assert outcome.progress.quiz_completed is False
        assert outcome.progress.video_progress_percentage == 40
        assert outcome.progress.started_at is not None
        assert outcome.progress.completed_at is None
        assert outcome.lesson_just_completed is False
        assert await _count(db_session, LessonProgress) == 1

    @pytest.mark.asyncio
    async def test_no_flags_is_not_started(self, db_session, course: CourseFixture):
        outcome = await _service(db_session).record_progress(course.student_id, course.lesson_ids[1])
        assert outcome.progress.status == "not_started"

    @pytest.mark.asyncio
    async def test_flags_accumulate_across_posts(self, db_session, course: CourseFixture):
        service = _service(db_session)
        lesson_id = course.lesson_ids[1]

        await service.record_progress(course.student_id, lesson_id, video_watched=True)
        await service.record_progress(course.student_id, lesson_id, quiz_completed=True, quiz_score=80)
        outcome = await service.record_progress(course.student_id, lesson_id, task_completed=True)

        assert outcome.progress.status == "completed"
        assert outcome.progress.quiz_score == 80
        assert outcome.lesson_just_completed is True
        assert await _count(db_session, LessonProgress) == 1

    @pytest.mark.asyncio
    async def test_scalar_kept_unless_supplied(self, db_session, course: CourseFixture):
        service = _service(db_session)
        lesson_id = course.lesson_ids[1]

        await service.record_progress(course.student_id, lesson_id, video_progress_percentage=70, quiz_score=90)
        outcome = await service.record_progress(course.student_id, lesson_id, video_watched=True)

        assert outcome.progress.video_progress_percentage == 70
        assert outcome.progress.quiz_score == 90

    @pytest.mark.asyncio
    async def test_completed_never_reverts(self, db_session, course: CourseFixture):
        service = _service(db_session)
        lesson_id = course.lesson_ids[1]

        await service.record_progress(course.student_id, lesson_id, **ALL_DONE)
        outcome = await service.record_progress(
            course.student_id, lesson_id, video_watched=False, quiz_completed=False, task_completed=False
        )

        assert outcome.progress.status == "completed"
        assert outcome.progress.video_watched is True
        assert outcome.progress.quiz_completed is True
        assert outcome.progress.task_completed is True

    @pytest.mark.asyncio
    async def test_repeat_completion_keeps_completed_at(self, db_session, course: CourseFixture):
        service = _service(db_session)
        lesson_id = course.lesson_ids[1]

        first = await service.record_progress(course.student_id, lesson_id, **ALL_DONE)
        second = await service.record_progress(course.student_id, lesson_id, **ALL_DONE)

        assert second.progress.completed_at == first.progress.completed_at
        assert second.progress.id == first.progress.id
        assert second.lesson_just_completed is False
        assert await _count(db_session, LessonProgress) == 1

    @pytest.mark.asyncio
    async def test_missing_ids(self, db_session, course: CourseFixture):
        service = _service(db_session)
        with pytest.raises(ValidationError):
            await service.record_progress(None, course.lesson_ids[0], video_watched=True)
        with pytest.raises(ValidationError):
            await service.record_progress(course.student_id, None, video_watched=True)
        with pytest.raises(ValidationError):
            await service.record_progress(0, course.lesson_ids[0], video_watched=True)
        with pytest.raises(ValidationError):
            await service.record_progress(-5, course.lesson_ids[0], video_watched=True)

    @pytest.mark.asyncio
    async def test_unknown_lesson_writes_nothing(self, db_session, course: CourseFixture):
        with pytest.raises(NotFoundError):
            await _service(db_session).record_progress(course.student_id, 9999, **ALL_DONE)

        assert await _count(db_session, LessonProgress) == 0
        assert await _count(db_session, CourseProgress) == 0
        assert await _count(db_session, XPLedger) == 0


class TestXPOnCompletion:
    @pytest.mark.asyncio
    async def test_first_completion_grants_lesson_reward(self, db_session, course: CourseFixture):
        """Lesson worth 50 XP: one ledger row of 50 and total_xp up by exactly 50."""
        outcome = await _service(db_session).record_progress(course.student_id, course.lesson_ids[0], **ALL_DONE)

        assert outcome.progress.status == "completed"
        assert outcome.xp_granted == 50

        ledger = (await db_session.execute(
            select(XPLedger).where(XPLedger.user_id == course.student_id)
        )).scalars().all()
        assert [(e.amount, e.source_type, e.idempotency_key) for e in ledger] == [
            (50, "lesson", f"lesson:{course.lesson_ids[0]}:{course.student_id}")
        ]

        summary = await db_session.get(XPSummary, course.student_id, populate_existing=True)
        assert summary.total_xp == 50
        assert summary.current_level == 1
        assert summary.xp_to_next_level == 50

    @pytest.mark.asyncio
    async def test_repeat_completion_grants_nothing(self, db_session, course: CourseFixture):
        service = _service(db_session)
        await service.record_progress(course.student_id, course.lesson_ids[0], **ALL_DONE)
        outcome = await service.record_progress(course.student_id, course.lesson_ids[0], **ALL_DONE)

        assert outcome.xp_granted == 0
        assert await _count(db_session, XPLedger) == 1

    @pytest.mark.asyncio
    async def test_no_xp_before_completion(self, db_session, course: CourseFixture):
        await _service(db_session).record_progress(
            course.student_id, course.lesson_ids[0], video_watched=True, quiz_completed=True
        )
        assert await _count(db_session, XPLedger) == 0

    @pytest.mark.asyncio
    async def test_total_equals_ledger_sum(self, db_session, course: CourseFixture):
        service = _service(db_session)
        for lesson_id in course.lesson_ids:
            await service.record_progress(course.student_id, lesson_id, **ALL_DONE)

        ledger_sum = (await db_session.execute(
            select(func.sum(XPLedger.amount)).where(XPLedger.user_id == course.student_id)
        )).scalar_one()
        summary = await db_session.get(XPSummary, course.student_id, populate_existing=True)
        assert ledger_sum == 80
        assert summary.total_xp == ledger_sum

    @pytest.mark.asyncio
    async def test_completion_bumps_daily_streak(self, db_session, course: CourseFixture):
        service = _service(db_session)
        await service.record_progress(course.student_id, course.lesson_ids[0], **ALL_DONE)
        await service.record_progress(course.student_id, course.lesson_ids[1], **ALL_DONE)

        row = (await db_session.execute(
            select(DailyStreak)
            .where(DailyStreak.user_id == course.student_id)
            .execution_options(populate_existing=True)
        )).scalar_one()
        assert row.lessons_completed == 2
        assert row.xp_earned == 60


class TestCourseAggregation:
    @pytest.mark.asyncio
    async def test_two_of_four_is_fifty_percent(self, db_session, course: CourseFixture):
        """Completing lessons 1 and 3 points the course at lesson 2, the first incomplete one."""
        service = _service(db_session)
        await service.record_progress(course.student_id, course.lesson_ids[0], **ALL_DONE)
        outcome = await service.record_progress(course.student_id, course.lesson_ids[2], **ALL_DONE)

        assert outcome.course.progress_percentage == 50
        assert outcome.course.lessons_completed == 2
        assert outcome.course.total_lessons == 4
        assert outcome.course.current_lesson_id == course.lesson_ids[1]

    @pytest.mark.asyncio
    async def test_runs_without_completion(self, db_session, course: CourseFixture):
        outcome = await _service(db_session).record_progress(
            course.student_id, course.lesson_ids[0], video_watched=True
        )

        assert outcome.course.progress_percentage == 0
        assert outcome.course.current_lesson_id == course.lesson_ids[0]
        row = (await db_session.execute(select(CourseProgress))).scalar_one()
        assert row.started_at is not None
        assert row.completed_at is None


class TestSideEffects:
    @pytest.mark.asyncio
    async def test_badges_checked_once_per_completion(self, db_session, course: CourseFixture):
        checker = FakeBadgeChecker(awarded=["first_lesson"])
        service = _service(db_session, badge_checker=checker)

        await service.record_progress(course.student_id, course.lesson_ids[0], video_watched=True)
        assert checker.calls == []

        outcome = await service.record_progress(course.student_id, course.lesson_ids[0], **ALL_DONE)
        assert checker.calls == [course.student_id]
        assert outcome.badges_awarded == ["first_lesson"]

        await service.record_progress(course.student_id, course.lesson_ids[0], **ALL_DONE)
        assert checker.calls == [course.student_id]

    @pytest.mark.asyncio
    async def test_lesson_and_module_notifications(self, db_session, course: CourseFixture):
        notifier = FakeNotifier()
        service = _service(db_session, notifier=notifier)

        await service.record_progress(course.student_id, course.lesson_ids[0], **ALL_DONE)
        assert notifier.calls == [("lesson", course.student_id, "Variables", "Python Fundamentals")]

        outcome = await service.record_progress(course.student_id, course.lesson_ids[1], **ALL_DONE)
        assert outcome.module_just_completed is True
        assert notifier.calls[1:] == [
            ("lesson", course.student_id, "Loops", "Python Fundamentals"),
            ("module", course.student_id, "Basics", "Python Fundamentals"),
        ]

    @pytest.mark.asyncio
    async def test_course_completion_notified_exactly_once(self, db_session, course: CourseFixture):
        notifier = FakeNotifier()
        service = _service(db_session, notifier=notifier)

        for lesson_id in course.lesson_ids[:3]:
            await service.record_progress(course.student_id, lesson_id, **ALL_DONE)
        assert "course" not in notifier.kinds()

        outcome = await service.record_progress(course.student_id, course.lesson_ids[3], **ALL_DONE)
        assert outcome.course.progress_percentage == 100
        assert outcome.course.current_lesson_id is None
        assert outcome.course.just_completed is True
        assert notifier.kinds().count("course") == 1

        # Later recomputations do not re-announce
        await service.record_progress(course.student_id, course.lesson_ids[3], **ALL_DONE)
        await service.record_progress(course.student_id, course.lesson_ids[0], video_watched=True)
        assert notifier.kinds().count("course") == 1

        row = (await db_session.execute(
            select(CourseProgress).execution_options(populate_existing=True)
        )).scalar_one()
        assert row.completed_at is not None

    @pytest.mark.asyncio
    async def test_failing_collaborators_do_not_fail_the_call(self, db_session, course: CourseFixture):
        checker = FakeBadgeChecker(error=RuntimeError("badge store down"))
        notifier = FakeNotifier(error=ConnectionError("gateway down"))
        service = _service(db_session, badge_checker=checker, notifier=notifier)

        outcome = await service.record_progress(course.student_id, course.lesson_ids[0], **ALL_DONE)

        assert outcome.progress.status == "completed"
        assert outcome.badges_awarded == []
        assert checker.calls == [course.student_id]
        assert notifier.kinds() == ["lesson"]
        # Primary write was committed before the side effects ran
        assert await _count(db_session, XPLedger) == 1
        assert await _count(db_session, LessonProgress, LessonProgress.status == "completed") == 1
