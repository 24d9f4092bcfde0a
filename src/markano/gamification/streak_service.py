"""Daily learning streak: one row per learner per active day."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from markano.db.models import DailyStreak
from markano.db.upsert import insert_for

logger = logging.getLogger(__name__)

STREAK_WINDOW_DAYS = 30


def today_utc(now: datetime | None = None) -> date:
    """Current UTC calendar day."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.date()


def count_current_streak(active_days: set[date], today: date) -> int:
    """Count consecutive active days ending today.

    If today has no activity yet the run may still end yesterday, so a
    learner does not lose the streak before they had a chance to study.
    """
    cursor = today if today in active_days else today - timedelta(days=1)
    streak = 0
    while cursor in active_days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


async def record_lesson_completion(
    db: AsyncSession,
    user_id: int,
    xp_earned: int,
    now: datetime | None = None,
) -> None:
    """Upsert today's streak row: one more lesson, plus the XP it earned."""
    day = today_utc(now)
    stmt = insert_for(db, DailyStreak).values(
        user_id=user_id,
        streak_date=day,
        lessons_completed=1,
        xp_earned=xp_earned,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "streak_date"],
        set_={
            "lessons_completed": DailyStreak.lessons_completed + 1,
            "xp_earned": DailyStreak.xp_earned + stmt.excluded.xp_earned,
        },
    )
    await db.execute(stmt)


async def get_streak(db: AsyncSession, user_id: int, now: datetime | None = None) -> dict:
    """Streak view: today's row, current run length, last 30 days of activity."""
    today = today_utc(now)
    result = await db.execute(
        select(DailyStreak)
        .where(
            DailyStreak.user_id == user_id,
            DailyStreak.streak_date >= today - timedelta(days=STREAK_WINDOW_DAYS),
        )
        .order_by(DailyStreak.streak_date.desc())
    )
    rows = list(result.scalars().all())
    active_days = {row.streak_date for row in rows if row.lessons_completed > 0}
    today_row = next((row for row in rows if row.streak_date == today), None)

    return {
        "today_completed": today_row is not None,
        "current_streak": count_current_streak(active_days, today),
        "today_data": today_row,
        "recent_streaks": rows,
    }


async def get_current_streak(db: AsyncSession, user_id: int, now: datetime | None = None) -> int:
    """Current consecutive-day streak length."""
    view = await get_streak(db, user_id, now)
    return view["current_streak"]
