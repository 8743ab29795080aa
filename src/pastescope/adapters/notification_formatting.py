"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from datetime import datetime
from typing import List, Optional, Tuple

from pastescope.core.models import PasteItem, PasteMatch

SUBJECT_PREFIX = "Pastebin Scraper"
DIVIDER = "──────────────"

# Telegram rejects longer message texts.
TELEGRAM_MESSAGE_CHARS = 4096

# A literal match is a whole line, which can be arbitrarily long.
VALUE_CHARS = 200
ERROR_CHARS = 1000

Found = List[Tuple[str, str]]


def format_subject(match: PasteMatch) -> str:
    """Return the one-line subject used by mail notifications."""

    keywords = ", ".join(sorted(match.result.matches))
    return f"{SUBJECT_PREFIX}: found {keywords}"


def format_error_subject() -> str:
    return f"{SUBJECT_PREFIX}: error"


def _clip(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 1].rstrip() + "…"


def _timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%H:%M:%S %d-%m-%Y")


def _link(item: PasteItem) -> str:
    return item.full_url or f"https://pastebin.com/{item.key}"


def _excerpt(item: PasteItem, snippet_chars: int) -> str:
    if not item.body or snippet_chars <= 0:
        return ""
    excerpt = item.body[:snippet_chars].strip()
    if len(item.body) > snippet_chars:
        excerpt += "\n[...]"
    return excerpt


def _metadata(item: PasteItem) -> List[tuple[str, str]]:
    return [
        ("Key", item.key),
        ("Title", _clip(item.title, VALUE_CHARS) if item.title else "-"),
        ("User", _clip(item.user, VALUE_CHARS) if item.user else "-"),
        ("Date", _timestamp(item.date)),
        ("Size", str(item.size) if item.size is not None else "-"),
        ("Syntax", item.syntax or "-"),
        ("Expire", _timestamp(item.expire) if item.expire else "never"),
    ]


def _found(match: PasteMatch) -> Found:
    return [
        (_clip(keyword, VALUE_CHARS), _clip(value, VALUE_CHARS))
        for keyword, value in sorted(match.result.matches.items())
    ]


def _format_text(match: PasteMatch, snippet_chars: int, found: Found, omitted: int) -> str:
    """Plain text body used by mail and console notifications."""

    item = match.item
    lines = [f"{name}: {value}" for name, value in _metadata(item)]
    lines.extend(["", f"Link: {_link(item)}", "", "Matches:"])
    for keyword, value in found:
        lines.append(f"  {keyword}: {value}")
    if omitted:
        lines.append(f"  ... and {omitted} more")

    excerpt = _excerpt(item, snippet_chars)
    if excerpt:
        lines.extend(["", DIVIDER, excerpt, DIVIDER])
    return "\n".join(lines)


def _format_markdown(match: PasteMatch, snippet_chars: int, found: Found, omitted: int) -> str:
    """Create the Markdown body used by Saved Messages."""

    def escape_md(value: str) -> str:
        for ch in r"*[`_":
            value = value.replace(ch, f"\\{ch}")
        return value

    item = match.item
    lines = [f"**{escape_md(_clip(format_subject(match), VALUE_CHARS))}**"]
    lines.extend(f"**{name}:** {escape_md(value)}" for name, value in _metadata(item))
    lines.extend([DIVIDER, "**Why:**"])
    for keyword, value in found:
        lines.append(f"{escape_md(keyword)}: `{value.replace('`', '')}`")
    if omitted:
        lines.append(f"... and {omitted} more")

    excerpt = _excerpt(item, snippet_chars)
    if excerpt:
        lines.extend(["", escape_md(excerpt)])

    lines.extend(["", "**Link:**", _link(item), DIVIDER])
    return "\n".join(lines)


def _format_html(match: PasteMatch, snippet_chars: int, found: Found, omitted: int) -> str:
    """Create the HTML body used by the Bot API adapter."""

    item = match.item
    parts = [f"<b>{html.escape(_clip(format_subject(match), VALUE_CHARS))}</b>"]
    parts.extend(f"<b>{name}:</b> {html.escape(value)}" for name, value in _metadata(item))
    parts.extend([DIVIDER, "<b>Why:</b>"])
    for keyword, value in found:
        parts.append(f"{html.escape(keyword)}: <code>{html.escape(value)}</code>")
    if omitted:
        parts.append(f"... and {omitted} more")

    excerpt = _excerpt(item, snippet_chars)
    if excerpt:
        parts.extend(["", f"<pre>{html.escape(excerpt)}</pre>"])

    safe_link = html.escape(_link(item))
    parts.extend(["", "<b>Link:</b>", f"<a href=\"{safe_link}\">{safe_link}</a>", DIVIDER])
    return "\n".join(parts)


_FORMATTERS = {
    "text": _format_text,
    "markdown": _format_markdown,
    "html": _format_html,
}


def format_notification(
    match: PasteMatch,
    snippet_chars: int,
    mode: str,
    max_chars: Optional[int] = None,
) -> str:
    """Return the match notification formatted for the requested mode.

    Matched values are clipped before escaping. When ``max_chars`` is given
    and the message is still too long, the excerpt is dropped first and then
    trailing matches are summarised, so markup is never cut in half.
    """

    formatter = _FORMATTERS.get(mode)
    if formatter is None:
        raise ValueError(f"Unsupported notification format: {mode}")

    found = _found(match)
    message = formatter(match, snippet_chars, found, 0)
    if max_chars is None or len(message) <= max_chars:
        return message

    shown = len(found)
    message = formatter(match, 0, found, 0)
    while len(message) > max_chars and shown > 0:
        shown -= 1
        message = formatter(match, 0, found[:shown], len(found) - shown)
    return message


def format_error_notification(error: Exception, mode: str) -> str:
    """Return an error report formatted for the requested mode."""

    kind = type(error).__name__
    detail = _clip(str(error), ERROR_CHARS)
    if mode == "text":
        return f"{format_error_subject()}\n\n{kind}: {detail}"
    if mode == "markdown":
        return f"**{format_error_subject()}**\n{kind}: `{detail.replace('`', '')}`"
    if mode == "html":
        return f"<b>{html.escape(format_error_subject())}</b>\n{kind}: <code>{html.escape(detail)}</code>"
    raise ValueError(f"Unsupported notification format: {mode}")
