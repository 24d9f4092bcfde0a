"""Completion notifier: resolves the learner's contact handle and sends a template."""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from markano.config import get_settings
from markano.db.models import Student
from markano.messaging.service import MessagingService, get_messaging_service

logger = structlog.get_logger()


class MessagingNotifier:
    """Send lesson, module and course completion messages to a learner."""

    def __init__(
        self,
        db: AsyncSession,
        service: MessagingService | None = None,
        default_display_name: str | None = None,
    ) -> None:
        self.db = db
        self.service = service or get_messaging_service()
        self.default_display_name = default_display_name or get_settings().default_display_name

    async def _recipient(self, user_id: int) -> tuple[str, str] | None:
        result = await self.db.execute(
            select(Student.whatsapp_number, Student.full_name).where(Student.id == user_id)
        )
        row = result.one_or_none()
        if row is None or not (row.whatsapp_number or "").strip():
            logger.info("message_skipped_no_contact", user_id=user_id)
            return None
        display_name = (row.full_name or "").strip() or self.default_display_name
        return row.whatsapp_number, display_name

    async def _send(self, user_id: int, template_name: str, context: dict[str, str]) -> bool:
        recipient = await self._recipient(user_id)
        if recipient is None:
            return False
        to, display_name = recipient
        return await self.service.send_template(to, template_name, {"display_name": display_name, **context})

    async def lesson_completed(self, user_id: int, lesson_title: str, course_title: str) -> bool:
        return await self._send(
            user_id,
            "send-lesson-completion",
            {"lesson_title": lesson_title, "course_title": course_title},
        )

    async def module_completed(self, user_id: int, module_title: str, course_title: str) -> bool:
        return await self._send(
            user_id,
            "send-module-completion",
            {"module_title": module_title, "course_title": course_title},
        )

    async def course_completed(self, user_id: int, course_title: str) -> bool:
        return await self._send(user_id, "send-course-completion", {"course_title": course_title})
