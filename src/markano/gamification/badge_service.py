"""Milestone badge evaluation and award with duplicate prevention."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from markano.db.models import BadgeDefinition, CourseProgress, DailyStreak, Lesson, LessonProgress, UserBadge
from markano.db.upsert import insert_for
from markano.gamification.streak_service import get_current_streak, today_utc
from markano.gamification.xp_service import grant_xp

logger = logging.getLogger(__name__)


async def get_badge_by_key(db: AsyncSession, badge_key: str) -> BadgeDefinition | None:
    """Fetch a badge definition by key."""
    result = await db.execute(
        select(BadgeDefinition).where(BadgeDefinition.badge_key == badge_key)
    )
    return result.scalar_one_or_none()


async def has_badge(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def award_badge(
    db: AsyncSession,
    redis: object,
    user_id: int,
    badge_key: str,
) -> bool:
    """Award a badge to a user.

    Returns True if awarded, False if already earned or badge not found.
    Handles:
    1. Insert into user_badges (UNIQUE(user_id, badge_id) guards races)
    2. Grant badge XP (idempotent via idempotency_key)
    3. Publish badge_earned
    """
    badge = await get_badge_by_key(db, badge_key)
    if badge is None:
        logger.warning("Badge not found: %s", badge_key)
        return False

    if await has_badge(db, user_id, badge.id):
        return False

    now = datetime.now(timezone.utc)
    stmt = (
        insert_for(db, UserBadge)
        .values(user_id=user_id, badge_id=badge.id, earned_at=now)
        .on_conflict_do_nothing(index_elements=["user_id", "badge_id"])
        .returning(UserBadge.id)
    )
    if (await db.execute(stmt)).scalar_one_or_none() is None:
        return False  # Race condition: badge already awarded

    if badge.xp_reward > 0:
        await grant_xp(
            db=db,
            redis=redis,
            user_id=user_id,
            amount=badge.xp_reward,
            source_type="badge",
            source_id=badge_key,
            description=f'Earned badge: "{badge.badge_name}"',
            idempotency_key=f"badge:{badge_key}:{user_id}",
        )

    await _emit_badge_earned(redis, user_id, badge)
    logger.info("Awarded badge %s to user %s", badge_key, user_id)
    return True


async def _emit_badge_earned(redis: object, user_id: int, badge: BadgeDefinition) -> None:
    """Push a badge-earned event over Redis pub/sub."""
    if redis is None:
        return
    try:
        await redis.publish(  # type: ignore[union-attr]
            "pubsub:badge_earned",
            json.dumps({
                "user_id": user_id,
                "badge_key": badge.badge_key,
                "badge_name": badge.badge_name,
                "badge_icon": badge.badge_icon,
                "xp_reward": badge.xp_reward,
            }),
        )
    except Exception:
        logger.warning("Failed to publish badge_earned notification", exc_info=True)


# ── Milestone counters ──


async def count_completed_lessons(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(LessonProgress)
        .where(LessonProgress.user_id == user_id, LessonProgress.status == "completed")
    )
    return int(result.scalar_one())


async def count_completed_modules(db: AsyncSession, user_id: int) -> int:
    """Modules with at least one active lesson where every active lesson is completed."""
    done = (
        select(LessonProgress.lesson_id)
        .where(LessonProgress.user_id == user_id, LessonProgress.status == "completed")
        .subquery()
    )
    result = await db.execute(
        select(
            Lesson.module_id,
            func.count(Lesson.id).label("total"),
            func.count(done.c.lesson_id).label("completed"),
        )
        .outerjoin(done, done.c.lesson_id == Lesson.id)
        .where(Lesson.is_active.is_(True))
        .group_by(Lesson.module_id)
    )
    return sum(1 for row in result if row.total > 0 and row.completed == row.total)


async def count_completed_courses(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(CourseProgress)
        .where(CourseProgress.user_id == user_id, CourseProgress.completed_at.is_not(None))
    )
    return int(result.scalar_one())


async def count_perfect_quizzes(db: AsyncSession, user_id: int, min_score: int = 100) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(LessonProgress)
        .where(
            LessonProgress.user_id == user_id,
            LessonProgress.status == "completed",
            LessonProgress.quiz_score >= min_score,
        )
    )
    return int(result.scalar_one())


async def count_lessons_today(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(DailyStreak.lessons_completed).where(
            DailyStreak.user_id == user_id,
            DailyStreak.streak_date == today_utc(),
        )
    )
    return int(result.scalar_one_or_none() or 0)


class MilestoneBadgeChecker:
    """Evaluate every active badge definition against the learner's counters.

    Counters are computed lazily, once per trigger type per call.
    """

    def __init__(self, db: AsyncSession, redis: object = None) -> None:
        self.db = db
        self.redis = redis

    async def _counter(self, user_id: int, trigger_type: str, config: dict) -> int | None:
        if trigger_type == "lessons_completed":
            return await count_completed_lessons(self.db, user_id)
        if trigger_type == "modules_completed":
            return await count_completed_modules(self.db, user_id)
        if trigger_type == "courses_completed":
            return await count_completed_courses(self.db, user_id)
        if trigger_type == "perfect_quizzes":
            return await count_perfect_quizzes(self.db, user_id, int(config.get("score", 100)))
        if trigger_type == "lessons_in_day":
            return await count_lessons_today(self.db, user_id)
        if trigger_type == "streak_days":
            return await get_current_streak(self.db, user_id)
        return None

    async def check_milestones(self, user_id: int) -> list[str]:
        """Award every milestone badge the learner now qualifies for.

        Returns the keys of badges awarded by this call.
        """
        result = await self.db.execute(
            select(BadgeDefinition)
            .where(BadgeDefinition.is_active.is_(True))
            .order_by(BadgeDefinition.sort_order)
        )
        badges = list(result.scalars().all())

        earned_result = await self.db.execute(
            select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
        )
        earned_ids = set(earned_result.scalars().all())

        counters: dict[tuple, int | None] = {}
        awarded: list[str] = []
        for badge in badges:
            if badge.id in earned_ids:
                continue
            config = badge.trigger_config or {}
            threshold = config.get("threshold")
            if threshold is None:
                continue

            cache_key = (badge.trigger_type, config.get("score"))
            if cache_key not in counters:
                counters[cache_key] = await self._counter(user_id, badge.trigger_type, config)
            value = counters[cache_key]
            if value is None:
                logger.warning("Unknown badge trigger type %s for %s", badge.trigger_type, badge.badge_key)
                continue

            if value >= int(threshold) and await award_badge(self.db, self.redis, user_id, badge.badge_key):
                awarded.append(badge.badge_key)

        return awarded


async def list_user_badges(db: AsyncSession, user_id: int) -> tuple[list[UserBadge], list[BadgeDefinition]]:
    """Earned badges (newest first) and all active badge definitions."""
    earned_result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.desc())
    )
    earned = list(earned_result.unique().scalars().all())

    all_result = await db.execute(
        select(BadgeDefinition)
        .where(BadgeDefinition.is_active.is_(True))
        .order_by(BadgeDefinition.sort_order)
    )
    return earned, list(all_result.scalars().all())
