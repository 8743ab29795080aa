"""SMTP email notification adapter.

smtplib is blocking, so every delivery runs in a worker thread to keep the
polling loop responsive.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from pastescope.adapters.notification_formatting import (
    format_error_notification,
    format_error_subject,
    format_notification,
    format_subject,
)
from pastescope.core.config import MailConfig
from pastescope.core.errors import DeliveryError
from pastescope.core.models import PasteMatch

LOGGER = logging.getLogger(__name__)


class EmailNotifier:
    """Notifier adapter that sends plain text mails over SMTP."""

    def __init__(self, mail_config: MailConfig, snippet_chars: int) -> None:
        self._config = mail_config
        self._snippet_chars = snippet_chars

    def _build_message(self, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._config.sender
        message["To"] = ", ".join(self._config.recipients)
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        config = self._config
        try:
            with smtplib.SMTP(config.server, config.port, timeout=config.timeout) as server:
                if config.starttls:
                    server.starttls()
                if config.user and config.password:
                    server.login(config.user, config.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"SMTP delivery to {config.server}:{config.port} failed: {exc}") from exc

    async def send_match(self, match: PasteMatch) -> None:
        """Mail the match report for one paste."""

        message = self._build_message(
            format_subject(match),
            format_notification(match, self._snippet_chars, mode="text"),
        )
        await asyncio.to_thread(self._deliver, message)
        LOGGER.info("Mail sent for paste %s", match.item.key)

    async def send_error(self, error: Exception) -> None:
        message = self._build_message(
            format_error_subject(),
            format_error_notification(error, mode="text"),
        )
        await asyncio.to_thread(self._deliver, message)
