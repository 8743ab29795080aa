"""Telegram notification adapter for Saved Messages.

Formats a human-readable Markdown message and sends it to Saved Messages of
the logged-in user account.
"""

from __future__ import annotations

from telethon import TelegramClient, errors

from pastescope.adapters.notification_formatting import (
    TELEGRAM_MESSAGE_CHARS,
    format_error_notification,
    format_notification,
)
from pastescope.core.errors import DeliveryError
from pastescope.core.models import PasteMatch


class TelegramSavedMessagesNotifier:
    """Notifier adapter that sends messages to the user's Saved Messages."""

    def __init__(self, client: TelegramClient, snippet_chars: int) -> None:
        self._client = client
        self._snippet_chars = snippet_chars

    async def _send(self, message: str) -> None:
        try:
            await self._client.send_message("me", message, parse_mode="md")
        except (errors.RPCError, ConnectionError) as exc:
            raise DeliveryError(f"Saved Messages delivery failed: {exc}") from exc

    async def send_match(self, match: PasteMatch) -> None:
        """Send the formatted notification to Saved Messages."""

        message = format_notification(match, self._snippet_chars, mode="markdown", max_chars=TELEGRAM_MESSAGE_CHARS)
        await self._send(message)

    async def send_error(self, error: Exception) -> None:
        await self._send(format_error_notification(error, mode="markdown"))
