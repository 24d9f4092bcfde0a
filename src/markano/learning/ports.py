"""Collaborators the progress flow calls after its own transaction commits."""

from __future__ import annotations

from typing import Protocol


class BadgeChecker(Protocol):
    async def check_milestones(self, user_id: int) -> list[str]:
        """Award any newly qualified milestone badges; returns awarded keys."""
        ...


class CompletionNotifier(Protocol):
    async def lesson_completed(self, user_id: int, lesson_title: str, course_title: str) -> bool: ...

    async def module_completed(self, user_id: int, module_title: str, course_title: str) -> bool: ...

    async def course_completed(self, user_id: int, course_title: str) -> bool: ...
