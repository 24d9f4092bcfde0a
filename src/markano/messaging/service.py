"""
Messaging service with provider abstraction.

Supports a WhatsApp HTTP gateway and a log-only provider (default).
Provider is selected via configuration.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from markano.config import get_settings
from markano.messaging.templates import (
    course_completion,
    lesson_completion,
    module_completion,
)

logger = structlog.get_logger()

# Template registry: name -> function
_TEMPLATE_REGISTRY: dict[str, Any] = {
    "send-lesson-completion": lesson_completion,
    "send-module-completion": module_completion,
    "send-course-completion": course_completion,
}

_NON_DIGITS = re.compile(r"\D")


def format_chat_id(phone_number: str) -> str:
    """Convert ``+252 61 1234567`` to ``252611234567@c.us``."""
    return f"{_NON_DIGITS.sub('', phone_number)}@c.us"


class BaseMessagingProvider(ABC):
    """Abstract base class for message delivery providers."""

    @abstractmethod
    async def send(self, to: str, text: str) -> bool:
        """Send a text message. Returns True on success."""
        ...


class LogProvider(BaseMessagingProvider):
    """Log messages instead of delivering them."""

    async def send(self, to: str, text: str) -> bool:
        logger.info("message_logged", to=to, length=len(text), provider="log")
        return True


class WhatsAppProvider(BaseMessagingProvider):
    """Send messages through a WhatsApp HTTP gateway (``/api/sendText``)."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        session: str = "default",
        timeout: float = 10.0,
        link_preview: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.session = session
        self.timeout = timeout
        self.link_preview = link_preview
        self._transport = transport

    async def send(self, to: str, text: str) -> bool:
        """Send via the gateway's sendText endpoint."""
        chat_id = format_chat_id(to)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.api_url}/api/sendText",
                    headers={
                        "accept": "application/json",
                        "X-Api-Key": self.api_key,
                        "Content-Type": "application/json",
                    },
                    json={
                        "chatId": chat_id,
                        "reply_to": None,
                        "text": text,
                        "linkPreview": self.link_preview,
                        "session": self.session,
                    },
                )
                response.raise_for_status()
                logger.info("message_sent", chat_id=chat_id, provider="whatsapp")
                return True
        except httpx.TimeoutException:
            logger.warning("message_send_timeout", chat_id=chat_id, provider="whatsapp", timeout=self.timeout)
            return False
        except Exception:
            logger.exception("message_send_failed", chat_id=chat_id, provider="whatsapp")
            return False


def _create_provider() -> BaseMessagingProvider:
    """Create messaging provider based on configuration."""
    settings = get_settings()
    provider_name = settings.messaging_provider.lower()

    if provider_name == "log":
        return LogProvider()
    if provider_name == "whatsapp":
        return WhatsAppProvider(
            api_url=settings.whatsapp_api_url,
            api_key=settings.whatsapp_api_key,
            session=settings.whatsapp_session,
            timeout=settings.whatsapp_timeout_seconds,
        )
    msg = f"Unsupported messaging provider: {provider_name}"
    raise ValueError(msg)


class MessagingService:
    """High-level messaging service: template rendering plus delivery."""

    def __init__(self, provider: BaseMessagingProvider | None = None) -> None:
        self.provider = provider or _create_provider()

    async def send_message(self, to: str, text: str) -> bool:
        """Send a raw text message. Returns True if delivered."""
        return await self.provider.send(to, text)

    async def send_template(self, to: str, template_name: str, context: dict[str, str]) -> bool:
        """
        Render a template and send.

        Args:
            to: Recipient contact handle (phone number).
            template_name: One of send-lesson-completion, send-module-completion,
                send-course-completion.
            context: Template arguments by name.

        Raises:
            ValueError: If the template name is unknown.
        """
        template_func = _TEMPLATE_REGISTRY.get(template_name)
        if template_func is None:
            msg = f"Unknown template: {template_name}"
            raise ValueError(msg)

        text = template_func(**context)
        return await self.send_message(to, text)


# Module-level singleton
_messaging_service: MessagingService | None = None


def get_messaging_service() -> MessagingService:
    """Get or create the messaging service singleton."""
    global _messaging_service  # noqa: PLW0603
    if _messaging_service is None:
        _messaging_service = MessagingService()
    return _messaging_service


def reset_messaging_service() -> None:
    """Reset the messaging service singleton (for testing)."""
    global _messaging_service  # noqa: PLW0603
    _messaging_service = None
