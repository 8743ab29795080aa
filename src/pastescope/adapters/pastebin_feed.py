"""Pastebin scraping API feed adapter.

Implements the core FeedSourcePort on top of a shared aiohttp session. The
scraping API only answers whitelisted IPs, which it signals with a plain-text
banner and a 200 status, so both endpoints check for it explicitly.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import List

import aiohttp

from pastescope.adapters.pastebin_mapper import pastes_from_api
from pastescope.core.errors import FetchError, ListError
from pastescope.core.models import PasteItem

LOGGER = logging.getLogger(__name__)

LIST_URL = "https://scrape.pastebin.com/api_scraping.php"
ITEM_URL = "https://scrape.pastebin.com/api_scrape_item.php"
DEFAULT_LIMIT = 100
USER_AGENT = "pastescope"

_NO_ACCESS_MARKER = "DOES NOT HAVE ACCESS"
_MISSING_PASTE_MARKER = "Error, we cannot find this paste."


def _denied(text: str) -> bool:
    head = text.lstrip()[:200].upper()
    return head.startswith("YOUR IP") and _NO_ACCESS_MARKER in head


class PastebinFeed:
    """Feed adapter for the Pastebin scraping API."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        timeout: float,
        list_url: str = LIST_URL,
        item_url: str = ITEM_URL,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._list_url = list_url
        self._item_url = item_url
        self._limit = limit

    async def _get_text(self, url: str, params: dict) -> tuple[int, str]:
        async with self._session.get(
            url,
            params=params,
            headers={"User-Agent": USER_AGENT},
            timeout=self._timeout,
        ) as resp:
            return resp.status, await resp.text(errors="replace")

    async def list_recent(self) -> List[PasteItem]:
        """Return the most recent pastes in API order."""

        try:
            status, text = await self._get_text(self._list_url, {"limit": str(self._limit)})
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ListError(f"fetch paste list: {exc}") from exc

        if status != 200:
            raise ListError(f"fetch paste list: unexpected status {status}: {text[:200]}")
        if _denied(text):
            raise ListError(f"fetch paste list: {text.strip()}")
        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise ListError(f"fetch paste list: invalid JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise ListError(f"fetch paste list: expected a JSON array, got {type(payload).__name__}")

        items = pastes_from_api(payload)
        LOGGER.debug("Listed %s pastes", len(items))
        return items

    async def fetch_body(self, item: PasteItem) -> str:
        """Return the raw content of one paste."""

        try:
            status, text = await self._get_text(self._item_url, {"i": item.key})
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FetchError(f"fetch paste {item.key}: {exc}") from exc

        if status != 200:
            raise FetchError(f"fetch paste {item.key}: unexpected status {status}")
        if _denied(text):
            raise FetchError(f"fetch paste {item.key}: {text.strip()}")
        if text.strip() == _MISSING_PASTE_MARKER:
            raise FetchError(f"fetch paste {item.key}: paste no longer exists")
        return text
