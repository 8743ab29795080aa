"""Console notifier used in test mode: prints instead of sending."""

from __future__ import annotations

import sys
from typing import TextIO

from pastescope.adapters.notification_formatting import (
    format_error_notification,
    format_notification,
    format_subject,
)
from pastescope.core.models import PasteMatch


class ConsoleNotifier:
    def __init__(self, snippet_chars: int, stream: TextIO = sys.stdout) -> None:
        self._snippet_chars = snippet_chars
        self._stream = stream

    async def send_match(self, match: PasteMatch) -> None:
        print(format_subject(match), file=self._stream)
        print(format_notification(match, self._snippet_chars, mode="text"), file=self._stream)
        print(file=self._stream, flush=True)

    async def send_error(self, error: Exception) -> None:
        print(format_error_notification(error, mode="text"), file=self._stream, flush=True)
