"""Gamification read endpoints: XP, badges, streak, levels."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from markano.database import get_session
from markano.db.models import DailyStreak, XPLedger
from markano.gamification.badge_service import list_user_badges
from markano.gamification.level_thresholds import compute_level
from markano.gamification.schemas import (
    AllLevelsResponse,
    BadgeDefinitionResponse,
    EarnedBadgeResponse,
    LevelEntry,
    StreakDayEntry,
    StreakResponse,
    UserBadgesResponse,
    XPHistoryEntry,
    XPResponse,
)
from markano.gamification.streak_service import get_streak
from markano.gamification.xp_service import get_or_create_summary, load_levels

router = APIRouter(prefix="/api/v1/learning/gamification", tags=["Gamification"])


def _day_entry(row: DailyStreak) -> StreakDayEntry:
    return StreakDayEntry(
        streak_date=row.streak_date,
        lessons_completed=row.lessons_completed,
        xp_earned=row.xp_earned,
    )


@router.get("/xp", response_model=XPResponse)
async def get_xp(
    user_id: int = Query(..., ge=1),
    db: AsyncSession = Depends(get_session),
):
    """Get a learner's XP summary, level and the 10 most recent grants."""
    summary = await get_or_create_summary(db, user_id)
    await db.commit()

    level_info = compute_level(summary.total_xp, await load_levels(db))

    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.earned_at.desc(), XPLedger.id.desc())
        .limit(10)
    )

    return XPResponse(
        user_id=user_id,
        total_xp=summary.total_xp,
        level=summary.current_level,
        level_title=level_info["title"],
        xp_to_next_level=summary.xp_to_next_level,
        next_level=level_info["next_level"],
        recent=[
            XPHistoryEntry(
                amount=e.amount,
                source_type=e.source_type,
                source_id=e.source_id,
                description=e.description,
                earned_at=e.earned_at,
            )
            for e in result.scalars()
        ],
    )


@router.get("/badges", response_model=UserBadgesResponse)
async def get_badges(
    user_id: int = Query(..., ge=1),
    db: AsyncSession = Depends(get_session),
):
    """Get a learner's earned badges and every badge with an earned flag."""
    earned, definitions = await list_user_badges(db, user_id)
    earned_ids = {ub.badge_id for ub in earned}

    return UserBadgesResponse(
        earned=[
            EarnedBadgeResponse(
                badge_key=ub.badge.badge_key,
                badge_name=ub.badge.badge_name,
                badge_icon=ub.badge.badge_icon,
                earned_at=ub.earned_at,
            )
            for ub in earned
        ],
        badges=[
            BadgeDefinitionResponse(
                badge_key=b.badge_key,
                badge_name=b.badge_name,
                description=b.description,
                badge_icon=b.badge_icon,
                badge_type=b.badge_type,
                xp_reward=b.xp_reward,
                earned=b.id in earned_ids,
            )
            for b in definitions
        ],
        total_available=len(definitions),
        total_earned=len(earned),
    )


@router.get("/streak", response_model=StreakResponse)
async def get_learning_streak(
    user_id: int = Query(..., ge=1),
    db: AsyncSession = Depends(get_session),
):
    """Get a learner's daily streak and the last 30 days of activity."""
    view = await get_streak(db, user_id)
    today_row = view["today_data"]
    return StreakResponse(
        current_streak=view["current_streak"],
        today_completed=view["today_completed"],
        today=_day_entry(today_row) if today_row is not None else None,
        recent=[_day_entry(row) for row in view["recent_streaks"]],
    )


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels(db: AsyncSession = Depends(get_session)):
    """Get all level definitions."""
    return AllLevelsResponse(
        levels=[
            LevelEntry(
                level=lv["level_number"],
                title=lv["level_name"],
                xp_required=lv["xp_required"],
                badge_icon=lv["badge_icon"],
            )
            for lv in await load_levels(db)
        ]
    )
