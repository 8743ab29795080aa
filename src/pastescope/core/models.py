"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the Pastebin API payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True)
class PasteItem:
    """A single entry of the recent pastes feed.

    ``body`` stays ``None`` until the paste content has been fetched; a fetched
    paste is a new instance (see ``with_body``), the listing entry is never
    mutated.
    """

    key: str
    title: str = ""
    date: Optional[datetime] = None
    size: Optional[int] = None
    expire: Optional[datetime] = None
    syntax: str = ""
    user: str = ""
    full_url: str = ""
    scrape_url: str = ""
    body: Optional[str] = None

    def with_body(self, body: str) -> "PasteItem":
        return replace(self, body=body)


@dataclass(frozen=True)
class MatchResult:
    """Rule identifier -> substring that triggered it."""

    matches: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "matches", MappingProxyType(dict(self.matches)))

    @property
    def matched(self) -> bool:
        return bool(self.matches)


@dataclass(frozen=True)
class PasteMatch:
    """A fetched paste together with the rules it matched."""

    item: PasteItem
    result: MatchResult
