"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

DEFAULT_POLL_INTERVAL = timedelta(minutes=1)
DEFAULT_ITEM_DELAY = timedelta(seconds=1)
DEFAULT_RETENTION = timedelta(minutes=10)
DEFAULT_QUEUE_SIZE = 100


@dataclass(frozen=True)
class PollConfig:
    """Timing and queue settings for the polling loop.

    - poll_interval: minimum time between two listings of the recent feed
    - item_delay: pause after every fetched paste to respect the API rate limit
    - retention: how long a paste key stays in the seen-set
    - queue_size: capacity of the match and error queues (producers block when full)
    """

    poll_interval: timedelta = DEFAULT_POLL_INTERVAL
    item_delay: timedelta = DEFAULT_ITEM_DELAY
    retention: timedelta = DEFAULT_RETENTION
    queue_size: int = DEFAULT_QUEUE_SIZE
    mail_on_error: bool = False


@dataclass(frozen=True)
class NotificationConfig:
    """Notifier selection and formatting settings consumed by notifier adapters."""

    method: str = "email"
    snippet_chars: int = 400
    bot_chat_id: Optional[str] = None


@dataclass(frozen=True)
class MailConfig:
    """SMTP settings for the email notifier."""

    server: str
    port: int
    sender: str
    recipients: tuple[str, ...]
    user: Optional[str] = None
    password: Optional[str] = None
    starttls: bool = False
    timeout: float = 10.0
