"""Telegram Bot API channel implementation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from tornado_monitor.alerts.formatter import TEST_MESSAGE

if TYPE_CHECKING:
    from tornado_monitor.config import TelegramConfig

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org/bot{token}/sendMessage"


class TelegramChannel:
    """Sends preformatted Markdown text to a Telegram chat.

    Every failure (transport error, non-2xx status, malformed body,
    ``ok != true``) is logged and reported as ``False``; nothing is raised
    and nothing is retried.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        enabled: bool = True,
        timeout: float = 10.0,
    ) -> None:
        """Initialize Telegram channel.

        Args:
            bot_token: Telegram bot token.
            chat_id: Target chat/channel ID.
            enabled: False turns every send into a no-op.
            timeout: HTTP request timeout in seconds.
        """
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.enabled = enabled and bool(bot_token) and bool(chat_id)
        self.timeout = timeout
        self.name = "telegram"

        self._api_url = TELEGRAM_API_BASE.format(token=bot_token)

    @classmethod
    def from_config(
        cls, config: TelegramConfig | None, *, timeout: float = 10.0
    ) -> TelegramChannel:
        """Build a channel from config; a missing section yields a disabled channel."""
        if config is None:
            return cls("", "", enabled=False, timeout=timeout)
        return cls(
            config.bot_token.get_secret_value(),
            config.chat_id,
            enabled=config.enabled,
            timeout=timeout,
        )

    async def send(self, text: str) -> bool:
        """Send a message.

        Args:
            text: Telegram Markdown text.

        Returns:
            True if Telegram acknowledged the message, False otherwise.
        """
        if not self.enabled:
            return False

        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self._api_url, json=payload)
        except httpx.TimeoutException:
            logger.error("Telegram API timeout")
            return False
        except httpx.HTTPError as e:
            logger.error("Telegram API error: %s", e)
            return False

        if not response.is_success:
            logger.error("Telegram API error: HTTP %s: %s", response.status_code, response.text)
            return False

        try:
            result = response.json()
        except ValueError:
            logger.error("Telegram API returned a non-JSON body")
            return False

        if isinstance(result, dict) and result.get("ok") is True:
            logger.debug("Telegram message delivered")
            return True

        description = (
            result.get("description", "Unknown error") if isinstance(result, dict) else result
        )
        logger.error("Telegram API rejected message: %s", description)
        return False

    async def test_connection(self) -> bool:
        """Send a canary message to verify credentials and chat access."""
        return await self.send(TEST_MESSAGE)
