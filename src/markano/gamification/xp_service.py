"""XP grant service with idempotency and level-up detection."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from markano.db.models import LearningLevel, XPLedger, XPSummary
from markano.db.upsert import insert_for
from markano.gamification.level_thresholds import compute_level

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class XPGrant:
    """Outcome of a grant_xp call."""

    granted: bool
    amount: int
    total_xp: int
    level: int
    xp_to_next_level: int
    leveled_up: bool = False


async def load_levels(db: AsyncSession) -> list[dict]:
    """Load the level table ordered by level_number."""
    result = await db.execute(select(LearningLevel).order_by(LearningLevel.level_number))
    return [
        {
            "level_number": lv.level_number,
            "level_name": lv.level_name,
            "xp_required": lv.xp_required,
            "badge_icon": lv.badge_icon,
        }
        for lv in result.scalars()
    ]


async def get_summary(db: AsyncSession, user_id: int) -> XPSummary | None:
    """Fetch the cached XP summary row, refreshed from the database."""
    result = await db.execute(
        select(XPSummary)
        .where(XPSummary.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_summary(db: AsyncSession, user_id: int) -> XPSummary:
    """Get the summary row, building it from the ledger when absent."""
    summary = await get_summary(db, user_id)
    if summary is None:
        await recalculate_summary(db, user_id)
        summary = await get_summary(db, user_id)
    return summary  # type: ignore[return-value]


async def recalculate_summary(db: AsyncSession, user_id: int) -> XPSummary:
    """Rebuild total_xp and level from the ledger, which is the source of truth."""
    total_result = await db.execute(
        select(func.coalesce(func.sum(XPLedger.amount), 0)).where(XPLedger.user_id == user_id)
    )
    total_xp = int(total_result.scalar_one())
    level_info = compute_level(total_xp, await load_levels(db))
    now = datetime.now(timezone.utc)

    stmt = insert_for(db, XPSummary).values(
        user_id=user_id,
        total_xp=total_xp,
        current_level=level_info["level"],
        xp_to_next_level=level_info["xp_to_next_level"],
        last_calculated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={
            "total_xp": stmt.excluded.total_xp,
            "current_level": stmt.excluded.current_level,
            "xp_to_next_level": stmt.excluded.xp_to_next_level,
            "last_calculated_at": stmt.excluded.last_calculated_at,
        },
    )
    await db.execute(stmt)
    return await get_summary(db, user_id)  # type: ignore[return-value]


async def grant_xp(
    db: AsyncSession,
    redis: object,
    user_id: int,
    amount: int,
    source_type: str,
    source_id: str,
    description: str,
    idempotency_key: str,
) -> XPGrant:
    """Grant XP to a user. ``granted`` is False when the key was already used.

    After granting:
    1. Append to the user_xp ledger (ON CONFLICT on idempotency_key does nothing)
    2. Upsert user_xp_summary.total_xp += amount
    3. Recompute level from total_xp against learning_levels
    4. If level changed, publish a level_up event
    """
    now = datetime.now(timezone.utc)

    ledger_stmt = insert_for(db, XPLedger).values(
        user_id=user_id,
        amount=amount,
        source_type=source_type,
        source_id=source_id,
        description=description,
        earned_at=now,
        idempotency_key=idempotency_key,
    )
    ledger_stmt = ledger_stmt.on_conflict_do_nothing(index_elements=["idempotency_key"]).returning(XPLedger.id)
    entry_id = (await db.execute(ledger_stmt)).scalar_one_or_none()

    if entry_id is None:
        summary = await get_or_create_summary(db, user_id)
        return XPGrant(
            granted=False,
            amount=0,
            total_xp=summary.total_xp,
            level=summary.current_level,
            xp_to_next_level=summary.xp_to_next_level,
        )

    # Update denormalized total; RETURNING gives the level before this grant
    summary_stmt = insert_for(db, XPSummary).values(
        user_id=user_id,
        total_xp=amount,
        current_level=1,
        xp_to_next_level=0,
        last_calculated_at=now,
    )
    summary_stmt = summary_stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={
            "total_xp": XPSummary.total_xp + summary_stmt.excluded.total_xp,
            "last_calculated_at": summary_stmt.excluded.last_calculated_at,
        },
    ).returning(XPSummary.total_xp, XPSummary.current_level)
    row = (await db.execute(summary_stmt)).one()
    total_xp, old_level = int(row.total_xp), int(row.current_level)

    # Recompute level
    level_info = compute_level(total_xp, await load_levels(db))
    await db.execute(
        update(XPSummary)
        .where(XPSummary.user_id == user_id)
        .values(
            current_level=level_info["level"],
            xp_to_next_level=level_info["xp_to_next_level"],
            last_calculated_at=now,
        )
    )

    leveled_up = level_info["level"] > old_level
    if leveled_up:
        await _emit_level_up(redis, user_id, old_level, level_info["level"], level_info["title"])

    logger.info("Granted %d XP to user %s (%s:%s)", amount, user_id, source_type, source_id)
    return XPGrant(
        granted=True,
        amount=amount,
        total_xp=total_xp,
        level=level_info["level"],
        xp_to_next_level=level_info["xp_to_next_level"],
        leveled_up=leveled_up,
    )


async def _emit_level_up(
    redis: object,
    user_id: int,
    old_level: int,
    new_level: int,
    title: str | None,
) -> None:
    """Broadcast a level-up event for dashboards and overlays."""
    if redis is None:
        return
    try:
        await redis.publish(  # type: ignore[union-attr]
            "pubsub:level_up",
            json.dumps({
                "user_id": user_id,
                "old_level": old_level,
                "new_level": new_level,
                "title": title,
            }),
        )
    except Exception:
        logger.warning("Failed to publish level_up broadcast", exc_info=True)
