"""Request and response models for the learning endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ProgressUpdateRequest(BaseModel):
    """A lesson-activity delta. Omitted flags keep their stored values."""

    # Optional here so a missing id surfaces as a 400, not a 422
    user_id: int | None = None
    lesson_id: int | None = None
    video_watched: bool | None = None
    video_progress_percentage: int | None = Field(None, ge=0, le=100)
    quiz_completed: bool | None = None
    quiz_score: int | None = Field(None, ge=0)
    task_completed: bool | None = None


class LessonProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    lesson_id: int
    status: str
    video_watched: bool
    video_progress_percentage: int
    quiz_completed: bool
    quiz_score: int
    task_completed: bool
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None


class LessonStatusEntry(BaseModel):
    lesson_id: int
    title: str
    module_id: int
    module_title: str
    status: str


class CourseProgressResponse(BaseModel):
    course_id: int
    course_title: str
    user_id: int
    progress_percentage: int = 0
    lessons_completed: int = 0
    total_lessons: int = 0
    current_lesson_id: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None
    lessons: list[LessonStatusEntry] = []
