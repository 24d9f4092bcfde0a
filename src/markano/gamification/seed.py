"""Seed data for the level table and milestone badges."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from markano.db.models import BadgeDefinition, LearningLevel
from markano.db.upsert import insert_for
from markano.gamification.level_thresholds import LEVEL_THRESHOLDS, validate_thresholds

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    # Lesson milestones
    {
        "badge_key": "first_lesson",
        "badge_name": "First Step",
        "description": "Complete your very first lesson",
        "badge_icon": "🎉",
        "badge_type": "milestone",
        "xp_reward": 10,
        "trigger_type": "lessons_completed",
        "trigger_config": {"threshold": 1},
        "sort_order": 1,
    },
    {
        "badge_key": "lessons_10",
        "badge_name": "Getting Serious",
        "description": "Complete 10 lessons",
        "badge_icon": "📚",
        "badge_type": "milestone",
        "xp_reward": 25,
        "trigger_type": "lessons_completed",
        "trigger_config": {"threshold": 10},
        "sort_order": 2,
    },
    {
        "badge_key": "lessons_50",
        "badge_name": "Knowledge Seeker",
        "description": "Complete 50 lessons",
        "badge_icon": "🔭",
        "badge_type": "milestone",
        "xp_reward": 100,
        "trigger_type": "lessons_completed",
        "trigger_config": {"threshold": 50},
        "sort_order": 3,
    },
    {
        "badge_key": "first_module",
        "badge_name": "Module Master",
        "description": "Finish every lesson in a module",
        "badge_icon": "🧩",
        "badge_type": "milestone",
        "xp_reward": 25,
        "trigger_type": "modules_completed",
        "trigger_config": {"threshold": 1},
        "sort_order": 4,
    },
    {
        "badge_key": "first_course",
        "badge_name": "Course Graduate",
        "description": "Complete an entire course",
        "badge_icon": "🎓",
        "badge_type": "milestone",
        "xp_reward": 100,
        "trigger_type": "courses_completed",
        "trigger_config": {"threshold": 1},
        "sort_order": 5,
    },
    # Skill
    {
        "badge_key": "quiz_master",
        "badge_name": "Quiz Master",
        "description": "Score 100 on 10 lesson quizzes",
        "badge_icon": "🧠",
        "badge_type": "skill",
        "xp_reward": 50,
        "trigger_type": "perfect_quizzes",
        "trigger_config": {"threshold": 10, "score": 100},
        "sort_order": 6,
    },
    {
        "badge_key": "speed_learner",
        "badge_name": "Speed Learner",
        "description": "Complete 10 lessons in a single day",
        "badge_icon": "⚡",
        "badge_type": "skill",
        "xp_reward": 50,
        "trigger_type": "lessons_in_day",
        "trigger_config": {"threshold": 10},
        "sort_order": 7,
    },
    # Streaks
    {
        "badge_key": "week_streak",
        "badge_name": "Week Warrior",
        "description": "Learn something 7 days in a row",
        "badge_icon": "🔥",
        "badge_type": "streak",
        "xp_reward": 50,
        "trigger_type": "streak_days",
        "trigger_config": {"threshold": 7},
        "sort_order": 8,
    },
    {
        "badge_key": "month_streak",
        "badge_name": "Unstoppable",
        "description": "Learn something 30 days in a row",
        "badge_icon": "💎",
        "badge_type": "streak",
        "xp_reward": 200,
        "trigger_type": "streak_days",
        "trigger_config": {"threshold": 30},
        "sort_order": 9,
    },
]


async def seed_levels(db: AsyncSession) -> int:
    """Upsert the level table. Returns number of levels seeded."""
    validate_thresholds(LEVEL_THRESHOLDS)

    for level_data in LEVEL_THRESHOLDS:
        stmt = insert_for(db, LearningLevel).values(**level_data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["level_number"],
            set_={
                "level_name": stmt.excluded.level_name,
                "xp_required": stmt.excluded.xp_required,
                "badge_icon": stmt.excluded.badge_icon,
            },
        )
        await db.execute(stmt)

    await db.commit()
    logger.info("Seeded %d learning levels", len(LEVEL_THRESHOLDS))
    return len(LEVEL_THRESHOLDS)


async def seed_badges(db: AsyncSession) -> int:
    """Upsert all badge definitions. Returns number of badges seeded."""
    seeded = 0
    for badge_data in BADGE_SEED_DATA:
        stmt = insert_for(db, BadgeDefinition).values(**badge_data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["badge_key"],
            set_={
                "badge_name": stmt.excluded.badge_name,
                "description": stmt.excluded.description,
                "badge_icon": stmt.excluded.badge_icon,
                "badge_type": stmt.excluded.badge_type,
                "xp_reward": stmt.excluded.xp_reward,
                "trigger_type": stmt.excluded.trigger_type,
                "trigger_config": stmt.excluded.trigger_config,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded
