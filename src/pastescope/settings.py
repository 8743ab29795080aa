"""Configuration loading for pastescope.

All user-editable settings (rules, timings, notifications, logging) live in a
single JSON file; secrets such as the SMTP password may instead come from the
environment (.env is honoured via python-dotenv). Any problem found here is a
``ConfigError`` and aborts startup.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional

from dotenv import load_dotenv

from pastescope.adapters.pastebin_feed import DEFAULT_LIMIT, ITEM_URL, LIST_URL
from pastescope.core.config import (
    DEFAULT_ITEM_DELAY,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_RETENTION,
    MailConfig,
    NotificationConfig,
    PollConfig,
)
from pastescope.core.errors import ConfigError

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

# Default location of the config file when --config is not given.
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

DEFAULT_TIMEOUT = timedelta(seconds=10)

NOTIFICATION_METHODS = {"email", "bot", "saved_messages", "console"}

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


@dataclass(frozen=True)
class FeedConfig:
    """Endpoints of the Pastebin scraping API."""

    list_url: str = LIST_URL
    item_url: str = ITEM_URL
    limit: int = DEFAULT_LIMIT


@dataclass(frozen=True)
class Settings:
    """Validated configuration for one run."""

    timeout: timedelta
    poll: PollConfig
    feed: FeedConfig
    keywords: list[dict]
    notifications: NotificationConfig
    mail: Optional[MailConfig] = None
    logging: dict = field(default_factory=dict)


def parse_duration(value: Any) -> timedelta:
    """Parse a Go-style duration string such as ``10s``, ``1m30s`` or ``250ms``.

    Bare numbers are read as seconds. Negative durations are rejected.
    """

    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ConfigError(f"invalid duration: {value!r}")
        return timedelta(seconds=value)
    if not isinstance(value, str):
        raise ConfigError(f"invalid duration: {value!r}")

    text = value.strip()
    if text == "0":
        return timedelta(0)

    seconds = 0.0
    position = 0
    for part in _DURATION_PART.finditer(text):
        if part.start() != position:
            break
        seconds += float(part.group(1)) * _DURATION_UNITS[part.group(2)]
        position = part.end()
    if not text or position != len(text):
        raise ConfigError(f"invalid duration: {value!r}")
    return timedelta(seconds=seconds)


def _load_json_config(path: str) -> dict:
    """Load the JSON config file."""

    if not os.path.exists(path):
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"could not read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    return data


def _int_option(section: dict, key: str, default: int, minimum: int = 0) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for {key}: {raw!r}") from exc
    if value < minimum:
        raise ConfigError(f"invalid value for {key}: {raw!r} (minimum {minimum})")
    return value


def _duration_option(config: dict, key: str, default: timedelta) -> timedelta:
    if key not in config:
        return default
    try:
        return parse_duration(config[key])
    except ConfigError as exc:
        raise ConfigError(f"invalid value for {key}: {config[key]!r}") from exc


def _build_poll_config(config: dict) -> PollConfig:
    # "mailonerror" is the key used by older config files.
    mail_on_error = config.get("mail_on_error", config.get("mailonerror", False))
    return PollConfig(
        poll_interval=_duration_option(config, "poll_interval", DEFAULT_POLL_INTERVAL),
        item_delay=_duration_option(config, "item_delay", DEFAULT_ITEM_DELAY),
        retention=_duration_option(config, "retention", DEFAULT_RETENTION),
        queue_size=_int_option(config, "queue_size", DEFAULT_QUEUE_SIZE, minimum=1),
        mail_on_error=bool(mail_on_error),
    )


def _build_feed_config(config: dict) -> FeedConfig:
    feed = config.get("feed", {}) or {}
    return FeedConfig(
        list_url=str(feed.get("list_url", LIST_URL)),
        item_url=str(feed.get("item_url", ITEM_URL)),
        limit=_int_option(feed, "limit", DEFAULT_LIMIT, minimum=1),
    )


def _build_notification_config(config: dict) -> NotificationConfig:
    notifications = config.get("notifications", {}) or {}
    method = str(notifications.get("method", "email")).strip().lower()
    if method not in NOTIFICATION_METHODS:
        raise ConfigError(
            f"notifications.method must be one of {', '.join(sorted(NOTIFICATION_METHODS))}, got {method!r}"
        )
    bot_chat_id = notifications.get("bot_chat_id")
    return NotificationConfig(
        method=method,
        snippet_chars=_int_option(notifications, "snippet_chars", 400),
        bot_chat_id=str(bot_chat_id) if bot_chat_id not in (None, "") else None,
    )


def _build_mail_config(config: dict, timeout: timedelta) -> MailConfig:
    mail = config.get("mail", {}) or {}
    recipients = mail.get("to", [])
    if isinstance(recipients, str):
        recipients = [recipients]
    recipients = tuple(str(address).strip() for address in recipients if str(address).strip())

    server = str(mail.get("server", "")).strip()
    sender = str(mail.get("from", "")).strip()
    if not server:
        raise ConfigError("mail.server is required for email notifications")
    if not sender:
        raise ConfigError("mail.from is required for email notifications")
    if not recipients:
        raise ConfigError("mail.to needs at least one recipient for email notifications")

    return MailConfig(
        server=server,
        port=_int_option(mail, "port", 25, minimum=1),
        sender=sender,
        recipients=recipients,
        user=mail.get("user") or os.getenv("SMTP_USER") or None,
        password=mail.get("password") or os.getenv("SMTP_PASSWORD") or None,
        starttls=bool(mail.get("starttls", False)),
        timeout=timeout.total_seconds(),
    )


def load_settings(path: str = CONFIG_PATH) -> Settings:
    """Load and validate the config file at ``path``."""

    load_dotenv()
    config = _load_json_config(path)

    timeout = _duration_option(config, "timeout", DEFAULT_TIMEOUT)
    if timeout <= timedelta(0):
        raise ConfigError(f"invalid value for timeout: {config.get('timeout')!r}")

    keywords = config.get("keywords", [])
    if not isinstance(keywords, list):
        raise ConfigError("keywords must be a list of rule definitions")

    notifications = _build_notification_config(config)
    mail = _build_mail_config(config, timeout) if notifications.method == "email" else None

    logging_config = config.get("logging", {}) or {}
    if not isinstance(logging_config, dict):
        raise ConfigError("logging must be an object")

    return Settings(
        timeout=timeout,
        poll=_build_poll_config(config),
        feed=_build_feed_config(config),
        keywords=keywords,
        notifications=notifications,
        mail=mail,
        logging=logging_config,
    )
