"""Learning API endpoints: progress recording and course progress."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from markano.database import get_session
from markano.dependencies import get_redis_dep
from markano.gamification.badge_service import MilestoneBadgeChecker
from markano.learning.course_progress import get_course_progress
from markano.learning.progress_service import ProgressService
from markano.learning.schemas import (
    CourseProgressResponse,
    LessonProgressResponse,
    LessonStatusEntry,
    ProgressUpdateRequest,
)
from markano.messaging.notifier import MessagingNotifier

router = APIRouter(prefix="/api/v1/learning", tags=["Learning"])


async def get_progress_service(
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
) -> ProgressService:
    """Progress service wired to the milestone badge checker and messaging notifier."""
    return ProgressService(
        db=db,
        redis=redis,
        badge_checker=MilestoneBadgeChecker(db, redis),
        notifier=MessagingNotifier(db),
    )


@router.post("/progress", response_model=LessonProgressResponse)
async def update_progress(
    body: ProgressUpdateRequest,
    service: ProgressService = Depends(get_progress_service),
):
    """Record lesson activity (video, quiz, task) for a learner."""
    outcome = await service.record_progress(
        user_id=body.user_id,
        lesson_id=body.lesson_id,
        video_watched=body.video_watched,
        video_progress_percentage=body.video_progress_percentage,
        quiz_completed=body.quiz_completed,
        quiz_score=body.quiz_score,
        task_completed=body.task_completed,
    )
    return outcome.progress


@router.get("/courses/{course_id}/progress", response_model=CourseProgressResponse)
async def read_course_progress(
    course_id: int,
    user_id: int = Query(..., ge=1),
    db: AsyncSession = Depends(get_session),
):
    """Get a learner's progress in one course with per-lesson status."""
    data = await get_course_progress(db, user_id, course_id)
    stored = data["progress"]

    response = CourseProgressResponse(
        course_id=data["course_id"],
        course_title=data["course_title"],
        user_id=user_id,
        lessons=[LessonStatusEntry(**entry) for entry in data["lessons"]],
    )
    if stored is not None:
        response.progress_percentage = stored.progress_percentage
        response.lessons_completed = stored.lessons_completed
        response.total_lessons = stored.total_lessons
        response.current_lesson_id = stored.current_lesson_id
        response.started_at = stored.started_at
        response.completed_at = stored.completed_at
        response.last_accessed_at = stored.last_accessed_at
    return response
