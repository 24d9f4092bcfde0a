"""Pydantic response models for gamification endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


# --- XP ---


class XPHistoryEntry(BaseModel):
    amount: int
    source_type: str
    source_id: str | None = None
    description: str | None = None
    earned_at: datetime | None = None


class XPResponse(BaseModel):
    user_id: int
    total_xp: int
    level: int
    level_title: str | None = None
    xp_to_next_level: int
    next_level: int | None = None
    recent: list[XPHistoryEntry] = []


# --- Badge ---


class BadgeDefinitionResponse(BaseModel):
    badge_key: str
    badge_name: str
    description: str
    badge_icon: str | None = None
    badge_type: str
    xp_reward: int
    earned: bool = False


class EarnedBadgeResponse(BaseModel):
    badge_key: str
    badge_name: str
    badge_icon: str | None = None
    earned_at: datetime


class UserBadgesResponse(BaseModel):
    earned: list[EarnedBadgeResponse]
    badges: list[BadgeDefinitionResponse]
    total_available: int
    total_earned: int


# --- Streak ---


class StreakDayEntry(BaseModel):
    streak_date: date
    lessons_completed: int
    xp_earned: int


class StreakResponse(BaseModel):
    current_streak: int
    today_completed: bool = False
    today: StreakDayEntry | None = None
    recent: list[StreakDayEntry] = []


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    title: str
    xp_required: int
    badge_icon: str | None = None


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]
