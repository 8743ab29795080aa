"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the paste feed and notification
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import List, Protocol

from pastescope.core.models import PasteItem, PasteMatch


class FeedSourcePort(Protocol):
    """Feed operations required by the polling loop.

    Implementations raise ``ListError``/``FetchError`` on failure and must be
    safe to call repeatedly.
    """

    async def list_recent(self) -> List[PasteItem]:
        ...

    async def fetch_body(self, item: PasteItem) -> str:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the dispatch workers."""

    async def send_match(self, match: PasteMatch) -> None:
        ...

    async def send_error(self, error: Exception) -> None:
        ...
