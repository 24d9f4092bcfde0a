"""Lesson progress recording and the completion side effects it drives.

One call runs, in order:
1. Upsert the (user, lesson) progress row, OR-merging the activity flags
2. On first completion: grant lesson XP and bump today's streak row
3. Recompute course progress (every call) and, on first completion, module completion
4. Commit
5. Best-effort: milestone badges, then completion messages
"""

from __future__ import annotations

import json
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy import and_, case, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from markano.config import Settings, get_settings
from markano.db.models import Lesson, LessonProgress, Module
from markano.db.upsert import insert_for
from markano.gamification.streak_service import record_lesson_completion
from markano.gamification.xp_service import grant_xp
from markano.learning.course_progress import (
    CourseProgressResult,
    is_module_complete,
    recompute_course_progress,
)
from markano.learning.errors import NotFoundError, PersistenceError, ValidationError
from markano.learning.ports import BadgeChecker, CompletionNotifier
from markano.learning.progress_rules import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    derive_status,
    merge_flags,
)
from markano.learning.schemas import LessonProgressResponse

logger = structlog.get_logger()

_FLAGS = ("video_watched", "quiz_completed", "task_completed")


@dataclass
class ProgressOutcome:
    """What one recording call did. ``progress`` is the row as committed."""

    progress: LessonProgressResponse
    lesson_just_completed: bool = False
    module_just_completed: bool = False
    course: CourseProgressResult | None = None
    xp_granted: int = 0
    badges_awarded: list[str] = field(default_factory=list)


class ProgressService:
    """Record lesson activity and fan out completion side effects."""

    def __init__(
        self,
        db: AsyncSession,
        redis: object | None = None,
        badge_checker: BadgeChecker | None = None,
        notifier: CompletionNotifier | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.redis = redis
        self.badge_checker = badge_checker
        self.notifier = notifier
        self.settings = settings or get_settings()

    async def _load_lesson(self, lesson_id: int) -> Lesson | None:
        result = await self.db.execute(
            select(Lesson)
            .options(joinedload(Lesson.module).joinedload(Module.course))
            .where(Lesson.id == lesson_id)
        )
        return result.scalar_one_or_none()

    async def _upsert_progress(
        self,
        user_id: int,
        lesson_id: int,
        video_watched: bool | None,
        video_progress_percentage: int | None,
        quiz_completed: bool | None,
        quiz_score: int | None,
        task_completed: bool | None,
        now: datetime,
    ) -> tuple[LessonProgress, bool]:
        """Single INSERT ... ON CONFLICT DO UPDATE keyed on (user_id, lesson_id).

        Returns the row and whether completed_at was set by this call.
        """
        previous = await self.db.execute(
            select(LessonProgress.completed_at).where(
                LessonProgress.user_id == user_id,
                LessonProgress.lesson_id == lesson_id,
            )
        )
        previous_completed_at = previous.scalar_one_or_none()

        # Insert path: plain values from the pure rules
        flags = merge_flags(
            None,
            video_watched=video_watched,
            quiz_completed=quiz_completed,
            task_completed=task_completed,
        )
        status = derive_status(flags)
        stmt = insert_for(self.db, LessonProgress).values(
            user_id=user_id,
            lesson_id=lesson_id,
            status=status,
            video_watched=flags.video_watched,
            video_progress_percentage=video_progress_percentage or 0,
            quiz_completed=flags.quiz_completed,
            quiz_score=quiz_score or 0,
            task_completed=flags.task_completed,
            started_at=now,
            completed_at=now if status == COMPLETED else None,
            last_accessed_at=now,
        )

        # Conflict path: the same rules expressed over stored and incoming columns
        merged = {name: or_(getattr(LessonProgress, name), getattr(stmt.excluded, name)) for name in _FLAGS}
        all_done = and_(*merged.values())
        any_done = or_(*merged.values())

        set_ = dict(merged)
        set_["status"] = case((all_done, COMPLETED), (any_done, IN_PROGRESS), else_=NOT_STARTED)
        set_["completed_at"] = case(
            (and_(all_done, LessonProgress.completed_at.is_(None)), stmt.excluded.last_accessed_at),
            else_=LessonProgress.completed_at,
        )
        set_["last_accessed_at"] = stmt.excluded.last_accessed_at
        if video_progress_percentage is not None:
            set_["video_progress_percentage"] = stmt.excluded.video_progress_percentage
        if quiz_score is not None:
            set_["quiz_score"] = stmt.excluded.quiz_score

        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "lesson_id"],
            set_=set_,
        ).returning(LessonProgress)
        result = await self.db.scalars(stmt, execution_options={"populate_existing": True})
        row = result.one()

        just_completed = previous_completed_at is None and row.completed_at is not None
        return row, just_completed

    async def record_progress(
        self,
        user_id: int | None,
        lesson_id: int | None,
        video_watched: bool | None = None,
        video_progress_percentage: int | None = None,
        quiz_completed: bool | None = None,
        quiz_score: int | None = None,
        task_completed: bool | None = None,
    ) -> ProgressOutcome:
        """Record a lesson-activity delta for a learner.

        Raises:
            ValidationError: user_id or lesson_id missing, zero or negative.
            NotFoundError: the lesson does not exist.
            PersistenceError: a database step of the primary write failed.
        """
        if not user_id or not lesson_id or user_id < 0 or lesson_id < 0:
            raise ValidationError("user_id and lesson_id are required")

        try:
            lesson = await self._load_lesson(lesson_id)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("progress_update_failed", user_id=user_id, lesson_id=lesson_id, exc_info=True)
            raise PersistenceError("Failed to update progress") from exc
        if lesson is None:
            raise NotFoundError("Lesson not found")

        module = lesson.module
        course = module.course
        lesson_title, module_title, course_title = lesson.title, module.title, course.title
        xp_reward = lesson.xp_reward if lesson.xp_reward is not None else self.settings.default_lesson_xp
        now = datetime.now(timezone.utc)

        lesson_granted = False
        module_done = False
        xp_granted = 0
        try:
            row, just_completed = await self._upsert_progress(
                user_id,
                lesson_id,
                video_watched,
                video_progress_percentage,
                quiz_completed,
                quiz_score,
                task_completed,
                now,
            )

            if just_completed:
                grant = await grant_xp(
                    db=self.db,
                    redis=self.redis,
                    user_id=user_id,
                    amount=xp_reward,
                    source_type="lesson",
                    source_id=str(lesson_id),
                    description=f"Completed: {lesson_title}",
                    idempotency_key=f"lesson:{lesson_id}:{user_id}",
                )
                # A concurrent duplicate completion already holds the key
                lesson_granted = grant.granted
                if grant.granted:
                    xp_granted = grant.amount
                    await record_lesson_completion(self.db, user_id, grant.amount, now)
                    module_done = await is_module_complete(self.db, user_id, module.id)

            course_result = await recompute_course_progress(
                self.db,
                user_id,
                course.id,
                completion_percentage=self.settings.course_completion_percentage,
                now=now,
            )
            snapshot = LessonProgressResponse.model_validate(row)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("progress_update_failed", user_id=user_id, lesson_id=lesson_id, exc_info=True)
            raise PersistenceError("Failed to update progress") from exc

        logger.info(
            "lesson_progress_recorded",
            user_id=user_id,
            lesson_id=lesson_id,
            status=snapshot.status,
            just_completed=lesson_granted,
            course_percentage=course_result.progress_percentage,
        )

        outcome = ProgressOutcome(
            progress=snapshot,
            lesson_just_completed=lesson_granted,
            module_just_completed=module_done,
            course=course_result,
            xp_granted=xp_granted,
        )

        if lesson_granted:
            await self._publish_lesson_completed(user_id, lesson_id, course.id, xp_granted)
            outcome.badges_awarded = await self._check_badges(user_id)

        if self.notifier is not None:
            if lesson_granted:
                await self._notify("lesson", self.notifier.lesson_completed(user_id, lesson_title, course_title))
            if module_done:
                await self._notify("module", self.notifier.module_completed(user_id, module_title, course_title))
            if course_result.just_completed:
                await self._notify("course", self.notifier.course_completed(user_id, course_title))

        return outcome

    async def _check_badges(self, user_id: int) -> list[str]:
        """Run the badge checker in its own transaction; failures roll back only its work."""
        if self.badge_checker is None:
            return []
        try:
            awarded = await self.badge_checker.check_milestones(user_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.warning("badge_check_failed", user_id=user_id, exc_info=True)
            return []
        if awarded:
            logger.info("badge_awarded", user_id=user_id, badges=awarded)
        return list(awarded or [])

    async def _notify(self, kind: str, call: Awaitable[bool]) -> None:
        try:
            await call
        except Exception:
            logger.warning("notification_failed", kind=kind, exc_info=True)

    async def _publish_lesson_completed(self, user_id: int, lesson_id: int, course_id: int, xp: int) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.publish(  # type: ignore[union-attr]
                "pubsub:lesson_completed",
                json.dumps({
                    "user_id": user_id,
                    "lesson_id": lesson_id,
                    "course_id": course_id,
                    "xp": xp,
                }),
            )
        except Exception:
            logger.warning("Failed to publish lesson_completed broadcast", exc_info=True)
