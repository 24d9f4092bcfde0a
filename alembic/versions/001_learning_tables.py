"""Learning tables: content hierarchy, progress, XP, levels, badges, streaks.

Creates students, learning_courses, learning_modules, learning_lessons,
user_lesson_progress, user_course_progress, user_xp, user_xp_summary,
learning_levels, learning_badges, user_badges and daily_streaks.
Levels and badges are seeded by the application at startup.

Revision ID: 001_learning_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_learning_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

BigIntId = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    # --- Students ---
    op.create_table(
        "students",
        sa.Column("id", BigIntId, primary_key=True, autoincrement=True),
        sa.Column("full_name", sa.String(128), nullable=True),
        sa.Column("whatsapp_number", sa.String(32), nullable=True),
        sa.Column("email", sa.String(320), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- Content: Course -> Module -> Lesson ---
    op.create_table(
        "learning_courses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "learning_modules",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("course_id", sa.Integer, sa.ForeignKey("learning_courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("order_index", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_learning_modules_course_id", "learning_modules", ["course_id"])

    op.create_table(
        "learning_lessons",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("module_id", sa.Integer, sa.ForeignKey("learning_modules.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("order_index", sa.Integer, nullable=False, server_default="0"),
        sa.Column("xp_reward", sa.Integer, nullable=False, server_default="10"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_learning_lessons_module_id", "learning_lessons", ["module_id"])

    # --- Progress ---
    op.create_table(
        "user_lesson_progress",
        sa.Column("id", BigIntId, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("lesson_id", sa.Integer, sa.ForeignKey("learning_lessons.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="not_started"),
        sa.Column("video_watched", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("video_progress_percentage", sa.Integer, nullable=False, server_default="0"),
        sa.Column("quiz_completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("quiz_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("task_completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "lesson_id", name="uq_user_lesson_progress"),
    )
    op.create_index("ix_user_lesson_progress_user_id", "user_lesson_progress", ["user_id"])

    op.create_table(
        "user_course_progress",
        sa.Column("id", BigIntId, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("course_id", sa.Integer, sa.ForeignKey("learning_courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("progress_percentage", sa.Integer, nullable=False, server_default="0"),
        sa.Column("lessons_completed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_lessons", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "current_lesson_id",
            sa.Integer,
            sa.ForeignKey("learning_lessons.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "course_id", name="uq_user_course_progress"),
    )
    op.create_index("ix_user_course_progress_user_id", "user_course_progress", ["user_id"])

    # --- XP ---
    op.create_table(
        "user_xp",
        sa.Column("id", BigIntId, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("source_type", sa.String(32), nullable=False),
        sa.Column("source_id", sa.String(128), nullable=True),
        sa.Column("description", sa.String(256), nullable=True),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("idempotency_key", sa.String(256), nullable=True, unique=True),
    )
    op.create_index("ix_user_xp_user_id", "user_xp", ["user_id"])

    op.create_table(
        "user_xp_summary",
        sa.Column("user_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("total_xp", sa.Integer, nullable=False, server_default="0"),
        sa.Column("current_level", sa.Integer, nullable=False, server_default="1"),
        sa.Column("xp_to_next_level", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_calculated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "learning_levels",
        sa.Column("level_number", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("xp_required", sa.Integer, nullable=False, unique=True),
        sa.Column("level_name", sa.String(64), nullable=False),
        sa.Column("badge_icon", sa.String(16), nullable=True),
    )

    # --- Badges ---
    op.create_table(
        "learning_badges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("badge_key", sa.String(64), nullable=False, unique=True),
        sa.Column("badge_name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("badge_icon", sa.String(16), nullable=True),
        sa.Column("badge_type", sa.String(32), nullable=False),
        sa.Column("xp_reward", sa.Integer, nullable=False, server_default="0"),
        sa.Column("trigger_type", sa.String(32), nullable=False),
        sa.Column("trigger_config", sa.JSON, nullable=False),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "user_badges",
        sa.Column("id", BigIntId, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("badge_id", sa.Integer, sa.ForeignKey("learning_badges.id"), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_user_badge"),
    )
    op.create_index("ix_user_badges_user_id", "user_badges", ["user_id"])

    # --- Streaks ---
    op.create_table(
        "daily_streaks",
        sa.Column("id", BigIntId, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("streak_date", sa.Date, nullable=False),
        sa.Column("lessons_completed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("xp_earned", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("user_id", "streak_date", name="uq_daily_streak"),
    )
    op.create_index("ix_daily_streaks_user_id", "daily_streaks", ["user_id"])


def downgrade() -> None:
    op.drop_table("daily_streaks")
    op.drop_table("user_badges")
    op.drop_table("learning_badges")
    op.drop_table("learning_levels")
    op.drop_table("user_xp_summary")
    op.drop_table("user_xp")
    op.drop_table("user_course_progress")
    op.drop_table("user_lesson_progress")
    op.drop_table("learning_lessons")
    op.drop_table("learning_modules")
    op.drop_table("learning_courses")
    op.drop_table("students")
