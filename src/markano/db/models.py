"""ORM models for the learning platform.

Progress, XP and course-progress tables carry UNIQUE constraints on their
natural keys; every writer goes through an upsert on those keys.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from markano.db.base import Base, BigIntId

LESSON_STATUSES = ("not_started", "in_progress", "completed")


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------


class Student(Base):
    """Learner record; only read by the progress flow (contact handle + name)."""

    __tablename__ = "students"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    full_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    whatsapp_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, unique=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Course content: Course -> Module -> Lesson
# ---------------------------------------------------------------------------


class Course(Base):
    """Top of the content hierarchy."""

    __tablename__ = "learning_courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())

    modules: Mapped[list[Module]] = relationship(
        "Module", back_populates="course", order_by="Module.order_index"
    )


class Module(Base):
    """Ordered group of lessons inside a course."""

    __tablename__ = "learning_modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("learning_courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    course: Mapped[Course] = relationship("Course", back_populates="modules")
    lessons: Mapped[list[Lesson]] = relationship(
        "Lesson", back_populates="module", order_by="Lesson.order_index"
    )


class Lesson(Base):
    """Smallest unit of learnable content."""

    __tablename__ = "learning_lessons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("learning_modules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=10, server_default="10")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    module: Mapped[Module] = relationship("Module", back_populates="lessons")


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


class LessonProgress(Base):
    """Per-learner lesson progress, UNIQUE(user_id, lesson_id)."""

    __tablename__ = "user_lesson_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "lesson_id", name="uq_user_lesson_progress"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    lesson_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("learning_lessons.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="not_started")
    video_watched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    video_progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quiz_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quiz_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    task_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_accessed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class CourseProgress(Base):
    """Per-learner course aggregate, UNIQUE(user_id, course_id)."""

    __tablename__ = "user_course_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_user_course_progress"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("learning_courses.id", ondelete="CASCADE"), nullable=False
    )
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lessons_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_lessons: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_lesson_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("learning_lessons.id", ondelete="SET NULL"), nullable=True
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_accessed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Gamification
# ---------------------------------------------------------------------------


class XPLedger(Base):
    """Immutable XP transaction log with idempotency key."""

    __tablename__ = "user_xp"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    earned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)


class XPSummary(Base):
    """Denormalized XP summary: one row per user, recomputable from the ledger."""

    __tablename__ = "user_xp_summary"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    xp_to_next_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class LearningLevel(Base):
    """Static level thresholds, seeded on startup."""

    __tablename__ = "learning_levels"

    level_number: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    xp_required: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    level_name: Mapped[str] = mapped_column(String(64), nullable=False)
    badge_icon: Mapped[str | None] = mapped_column(String(16), nullable=True)


class BadgeDefinition(Base):
    """Milestone badge definitions, seeded on startup."""

    __tablename__ = "learning_badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    badge_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    badge_name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    badge_icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    badge_type: Mapped[str] = mapped_column(String(32), nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trigger_type: Mapped[str] = mapped_column(String(32), nullable=False)
    trigger_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class UserBadge(Base):
    """Badges earned by users, UNIQUE(user_id, badge_id) prevents duplicates."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badge"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    badge_id: Mapped[int] = mapped_column(Integer, ForeignKey("learning_badges.id"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    badge: Mapped[BadgeDefinition] = relationship("BadgeDefinition", lazy="joined")


class DailyStreak(Base):
    """One row per learner per active day, UNIQUE(user_id, streak_date)."""

    __tablename__ = "daily_streaks"
    __table_args__ = (
        UniqueConstraint("user_id", "streak_date", name="uq_daily_streak"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    streak_date: Mapped[date] = mapped_column(Date, nullable=False)
    lessons_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
