"""Daily streak rows and the streak view."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from markano.gamification.streak_service import get_current_streak, get_streak, record_lesson_completion

USER_ID = 21
NOW = datetime(2026, 5, 20, 9, 0, tzinfo=timezone.utc)


def _days_ago(n: int) -> datetime:
    return NOW - timedelta(days=n)


class TestRecordLessonCompletion:
    @pytest.mark.asyncio
    async def test_same_day_accumulates(self, db_session):
        await record_lesson_completion(db_session, USER_ID, 10, NOW)
        await record_lesson_completion(db_session, USER_ID, 50, NOW + timedelta(hours=3))
        await db_session.commit()

        view = await get_streak(db_session, USER_ID, NOW)
        assert view["today_completed"] is True
        assert view["today_data"].lessons_completed == 2
        assert view["today_data"].xp_earned == 60
        assert view["current_streak"] == 1


class TestGetStreak:
    @pytest.mark.asyncio
    async def test_consecutive_days(self, db_session):
        for n in (0, 1, 2, 3):
            await record_lesson_completion(db_session, USER_ID, 10, _days_ago(n))
        await db_session.commit()

        assert await get_current_streak(db_session, USER_ID, NOW) == 4

    @pytest.mark.asyncio
    async def test_gap_resets(self, db_session):
        for n in (0, 1, 3, 4, 5):
            await record_lesson_completion(db_session, USER_ID, 10, _days_ago(n))
        await db_session.commit()

        assert await get_current_streak(db_session, USER_ID, NOW) == 2

    @pytest.mark.asyncio
    async def test_yesterday_keeps_streak_alive(self, db_session):
        for n in (1, 2):
            await record_lesson_completion(db_session, USER_ID, 10, _days_ago(n))
        await db_session.commit()

        view = await get_streak(db_session, USER_ID, NOW)
        assert view["today_completed"] is False
        assert view["today_data"] is None
        assert view["current_streak"] == 2

    @pytest.mark.asyncio
    async def test_recent_window_is_thirty_days(self, db_session):
        for n in (0, 10, 45):
            await record_lesson_completion(db_session, USER_ID, 10, _days_ago(n))
        await db_session.commit()

        view = await get_streak(db_session, USER_ID, NOW)
        assert [row.streak_date for row in view["recent_streaks"]] == [NOW.date(), _days_ago(10).date()]

    @pytest.mark.asyncio
    async def test_no_rows(self, db_session):
        view = await get_streak(db_session, USER_ID, NOW)
        assert view == {"today_completed": False, "current_streak": 0, "today_data": None, "recent_streaks": []}
