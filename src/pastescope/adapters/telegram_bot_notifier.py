"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so notifications can be routed via a bot chat.
"""

from __future__ import annotations

import asyncio

import aiohttp

from pastescope.adapters.notification_formatting import (
    TELEGRAM_MESSAGE_CHARS,
    format_error_notification,
    format_notification,
)
from pastescope.core.errors import DeliveryError
from pastescope.core.models import PasteMatch


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        bot_token: str,
        chat_id: str,
        snippet_chars: int,
        timeout: float,
    ) -> None:
        self._session = session
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._snippet_chars = snippet_chars
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    async def _post(self, text: str) -> None:
        payload = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            async with self._session.post(self._endpoint(), json=payload, timeout=self._timeout) as resp:
                if resp.status != 200:
                    body = await resp.text(errors="replace")
                    raise DeliveryError(f"Bot API error {resp.status}: {body}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DeliveryError(f"Bot API request failed: {exc}") from exc

    async def send_match(self, match: PasteMatch) -> None:
        """Send the formatted notification via the Bot API."""

        message = format_notification(match, self._snippet_chars, mode="html", max_chars=TELEGRAM_MESSAGE_CHARS)
        await self._post(message)

    async def send_error(self, error: Exception) -> None:
        await self._post(format_error_notification(error, mode="html"))
