"""Pastebin-to-core paste mapping adapter.

This keeps the scraping API's JSON shape out of the core pipeline.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from pastescope.core.models import PasteItem

LOGGER = logging.getLogger(__name__)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _timestamp(value: Any) -> Optional[datetime]:
    # The API sends unix timestamps as strings; "0" means "never" for expire.
    seconds = _int(value)
    if not seconds:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def paste_from_api(entry: dict) -> Optional[PasteItem]:
    """Build a PasteItem from one scraping API entry, or None without a key."""

    key = _text(entry.get("key"))
    if not key:
        return None
    return PasteItem(
        key=key,
        title=_text(entry.get("title")),
        date=_timestamp(entry.get("date")),
        size=_int(entry.get("size")),
        expire=_timestamp(entry.get("expire")),
        syntax=_text(entry.get("syntax")),
        user=_text(entry.get("user")),
        full_url=_text(entry.get("full_url")),
        scrape_url=_text(entry.get("scrape_url")),
    )


def pastes_from_api(entries: Iterable[Any]) -> List[PasteItem]:
    """Map a scraping API listing, keeping the API order."""

    items: List[PasteItem] = []
    for entry in entries:
        if not isinstance(entry, dict):
            LOGGER.debug("Ignoring malformed paste entry %r", entry)
            continue
        item = paste_from_api(entry)
        if item is None:
            LOGGER.debug("Ignoring paste entry without key: %r", entry)
            continue
        items.append(item)
    return items
