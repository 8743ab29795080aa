"""Telethon client factory and login flow for the Saved Messages notifier.

Credentials come from the environment (API_ID, API_HASH, SESSION_NAME, and
optionally PHONE, LOGIN_METHOD and TELEGRAM_2FA), loaded with python-dotenv so
secrets stay out of config.json.
"""

from __future__ import annotations

import logging
import os
from getpass import getpass

import qrcode
from dotenv import load_dotenv
from telethon import TelegramClient, errors

from pastescope.core.errors import ConfigError

LOGGER = logging.getLogger(__name__)

QR_LOGIN_TIMEOUT = 120


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    The session name defaults to "pastescope", creating a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "pastescope")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise ConfigError("API_ID and API_HASH are required for saved_messages notifications")
    try:
        api_id_value = int(api_id)
    except ValueError as exc:
        raise ConfigError(f"API_ID must be numeric, got {api_id!r}") from exc

    LOGGER.info("Initializing Telegram client")
    return TelegramClient(session_name, api_id_value, api_hash)


def _print_qr(url: str) -> None:
    qr = qrcode.QRCode(border=1)
    qr.add_data(url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


def _resolve_2fa_password() -> str:
    return os.getenv("TELEGRAM_2FA") or getpass("2FA password: ")


async def _authorize_with_qr(client: TelegramClient) -> None:
    qr = await client.qr_login()
    _print_qr(qr.url)
    await qr.wait(timeout=QR_LOGIN_TIMEOUT)


async def _authorize_with_phone(client: TelegramClient) -> None:
    phone = os.getenv("PHONE") or input("Phone number (international format): ").strip()
    await client.send_code_request(phone)
    code = input("Login code: ").strip()
    await client.sign_in(phone=phone, code=code)


def _pick_login_method() -> str:
    method = (os.getenv("LOGIN_METHOD") or "").strip().lower()
    if method in {"qr", "phone"}:
        return method
    while True:
        print("")
        print("Login methods:")
        print("[1] QR code")
        print("[2] Phone code")
        print("[3] Exit")
        choice = input("pastescope > ").strip()
        if choice == "1":
            return "qr"
        if choice == "2":
            return "phone"
        if choice == "3":
            raise SystemExit(0)
        print("Invalid option. Please choose 1, 2, or 3.")


async def authorize(client: TelegramClient) -> None:
    """Log the client in interactively unless the session is already authorized."""

    if await client.is_user_authorized():
        return

    try:
        if _pick_login_method() == "phone":
            await _authorize_with_phone(client)
        else:
            await _authorize_with_qr(client)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=_resolve_2fa_password())
