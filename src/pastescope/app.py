"""Application entry point for the pastescope scraper."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional, Tuple

import aiohttp
from art import tprint

from pastescope import settings
from pastescope.adapters.console_notifier import ConsoleNotifier
from pastescope.adapters.email_notifier import EmailNotifier
from pastescope.adapters.pastebin_feed import PastebinFeed
from pastescope.adapters.telegram_bot_notifier import TelegramBotNotifier
from pastescope.adapters.telegram_notifier import TelegramSavedMessagesNotifier
from pastescope.adapters.telegram_session import authorize, build_client
from pastescope.core.errors import ConfigError
from pastescope.core.ports import NotifierPort
from pastescope.core.processor import PasteProcessor
from pastescope.core.rules_engine import RuleSet, build_rules, describe_rules

NAME = "PASTESCOPE"
FONT = "tarty-1"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(config: dict, debug: bool = False) -> None:
    if not config.get("enabled", True) and not debug:
        return

    level_name = "DEBUG" if debug else str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    handlers: list[logging.Handler] = []

    if config.get("console", True) or debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/pastescope.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers, force=True)


def _load(config_path: str) -> Tuple[settings.Settings, RuleSet]:
    """Load settings and compile rules; any problem here is fatal."""

    loaded = settings.load_settings(config_path)
    rules = build_rules(loaded.keywords)
    return loaded, rules


async def _build_notifier(
    loaded: settings.Settings,
    session: aiohttp.ClientSession,
    test_mode: bool,
):
    """Select the notification adapter; returns (notifier, telegram_client or None)."""

    notifications = loaded.notifications
    timeout = loaded.timeout.total_seconds()
    method = "console" if test_mode else notifications.method

    if method == "console":
        return ConsoleNotifier(notifications.snippet_chars), None

    if method == "email":
        if loaded.mail is None:
            raise ConfigError("mail settings are required for email notifications")
        return EmailNotifier(loaded.mail, notifications.snippet_chars), None

    if method == "bot":
        bot_token = os.getenv("BOT_API")
        if not bot_token:
            raise ConfigError("BOT_API is required when notifications.method=bot")
        if not notifications.bot_chat_id:
            raise ConfigError("notifications.bot_chat_id is required for bot notifications")
        notifier = TelegramBotNotifier(
            session=session,
            bot_token=bot_token,
            chat_id=notifications.bot_chat_id,
            snippet_chars=notifications.snippet_chars,
            timeout=timeout,
        )
        return notifier, None

    if method == "saved_messages":
        client = build_client()
        await client.connect()
        if not await client.is_user_authorized():
            await client.disconnect()
            raise ConfigError("Telegram session is not authorized, run `pastescope login` first")
        return TelegramSavedMessagesNotifier(client, notifications.snippet_chars), client

    raise ConfigError(f"unsupported notification method {method!r}")


def _install_signal_handlers(processor: PasteProcessor) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, processor.stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops; Ctrl-C then surfaces as KeyboardInterrupt.
            logging.getLogger(__name__).debug("Signal handlers unavailable for %s", signum)


async def _run_async(loaded: settings.Settings, rules: RuleSet, test_mode: bool) -> None:
    logger = logging.getLogger(__name__)

    async with aiohttp.ClientSession() as session:
        feed = PastebinFeed(
            session,
            timeout=loaded.timeout.total_seconds(),
            list_url=loaded.feed.list_url,
            item_url=loaded.feed.item_url,
            limit=loaded.feed.limit,
        )
        notifier, telegram_client = await _build_notifier(loaded, session, test_mode)
        logger.info("Selected notification method - %s", type(notifier).__name__)

        processor = PasteProcessor(
            rules=rules,
            feed=feed,
            notifier=notifier,
            poll_config=loaded.poll,
        )
        _install_signal_handlers(processor)
        try:
            await processor.run()
        finally:
            if telegram_client is not None:
                await telegram_client.disconnect()
    logger.info("Stopped pastescope")


def _run(config_path: str, debug: bool, test_mode: bool) -> None:
    try:
        loaded, rules = _load(config_path)
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
        logging.getLogger(__name__).error("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc

    _print_banner()
    _configure_logging(loaded.logging, debug=debug)
    logger = logging.getLogger(__name__)

    logger.info("Starting pastescope")
    logger.info("%s rules are loaded", len(rules))
    for line in describe_rules(rules):
        logger.debug("Rule %s", line)

    try:
        asyncio.run(_run_async(loaded, rules, test_mode))
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        logger.info("Interrupted")


def _check(config_path: str) -> None:
    try:
        loaded, rules = _load(config_path)
    except ConfigError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    print(f"Configuration OK: {len(rules)} rules, notifications via {loaded.notifications.method}")
    for line in describe_rules(rules):
        print(f"  {line}")


def _login() -> None:
    _print_banner()

    async def _run_login() -> None:
        client = build_client()
        await client.connect()
        try:
            await authorize(client)
            me = await client.get_me()
            print(f"Logged in as: {me.first_name}")
        finally:
            await client.disconnect()

    try:
        asyncio.run(_run_login())
    except ConfigError as exc:
        raise SystemExit(str(exc)) from exc


def _common_options() -> argparse.ArgumentParser:
    # SUPPRESS keeps a subcommand from resetting options given before it.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=argparse.SUPPRESS, help="Config file to use")
    common.add_argument("--debug", action="store_true", default=argparse.SUPPRESS, help="Print debug output")
    common.add_argument(
        "--test",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Print notifications instead of sending them",
    )
    return common


def main(argv: Optional[list[str]] = None) -> None:
    common = _common_options()
    parser = argparse.ArgumentParser(prog="pastescope", parents=[common])
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", parents=[common], help="Start the scraper (default)")
    subparsers.add_parser("check", parents=[common], help="Validate the config file and list the compiled rules")
    subparsers.add_parser("login", parents=[common], help="Authorize the Telegram account used for saved_messages")

    args = parser.parse_args(argv)
    config_path = getattr(args, "config", settings.CONFIG_PATH)
    if args.command == "check":
        _check(config_path)
        return
    if args.command == "login":
        _login()
        return
    _run(config_path, debug=getattr(args, "debug", False), test_mode=getattr(args, "test", False))


if __name__ == "__main__":
    main()
