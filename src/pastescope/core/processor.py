"""Core paste polling pipeline.

This module is integration-agnostic. It only relies on ports for the paste
feed and notifications, enabling other paste sites or delivery channels
without changes here.

Each cycle runs in a strict order:
1) Wait until the poll interval since the last listing has elapsed
2) List recent pastes
3) For every unseen paste: mark it, fetch its body, apply rules
4) Queue matches for the notifier and failures for the error reporter
5) Evict expired keys from the seen-set
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time
from typing import Awaitable, Callable, Optional, Type, TypeVar

from pastescope.core.config import PollConfig
from pastescope.core.dedup import SeenCache
from pastescope.core.errors import DeliveryError, FetchError, ListError, PasteScopeError
from pastescope.core.models import PasteItem, PasteMatch
from pastescope.core.ports import FeedSourcePort, NotifierPort
from pastescope.core.rules_engine import RuleSet, match_rules

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class _Interrupted(Exception):
    """Raised inside a cycle when a stop request cancelled the pending call."""


@dataclass(frozen=True)
class CycleStats:
    """Counters for one poll cycle, used for logging and tests."""

    listed: int = 0
    skipped: int = 0
    fetched: int = 0
    failed: int = 0
    matched: int = 0
    evicted: int = 0
    list_failed: bool = False


def _as_error(exc: Exception, error_type: Type[PasteScopeError], context: str) -> Exception:
    """Keep our own errors as-is and wrap everything else with context."""

    if isinstance(exc, PasteScopeError):
        return exc
    error = error_type(f"{context}: {exc}")
    error.__cause__ = exc
    return error


async def _unless_set(event: asyncio.Event, awaitable: Awaitable[T]) -> T:
    """Await ``awaitable`` but cancel it as soon as ``event`` is set.

    Raises ``_Interrupted`` when the event won the race.
    """

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()
    if task.done():
        return task.result()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise _Interrupted()


class PasteProcessor:
    """Orchestrates listing, dedup, matching, and dispatch of pastes.

    Matches and errors travel on two bounded queues, each drained by its own
    worker task while ``run`` is active. When a queue is full the producer
    waits, so alerts are never dropped; a slow notifier slows polling down.

    ``stop`` cancels any feed call or queue put the cycle is waiting on, then
    ``run`` flushes what is already queued. A second ``stop`` (or ``abort``)
    also cancels that flush, including deliveries in flight.
    """

    def __init__(
        self,
        rules: RuleSet,
        feed: FeedSourcePort,
        notifier: NotifierPort,
        poll_config: PollConfig,
        seen: Optional[SeenCache] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rules = rules
        self._feed = feed
        self._notifier = notifier
        self._config = poll_config
        self._seen = seen if seen is not None else SeenCache(retention=poll_config.retention)
        self._monotonic = monotonic
        self._last_check: Optional[float] = None
        self._stopping = asyncio.Event()
        self._aborting = asyncio.Event()
        self.matches: "asyncio.Queue[PasteMatch]" = asyncio.Queue(maxsize=poll_config.queue_size)
        self.errors: "asyncio.Queue[Exception]" = asyncio.Queue(maxsize=poll_config.queue_size)

    @property
    def seen(self) -> SeenCache:
        return self._seen

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def stop(self) -> None:
        """Ask the loop to finish; pending notifications are still delivered.

        Calling it again while already stopping escalates to ``abort``.
        """

        if self._stopping.is_set():
            self.abort()
            return
        LOGGER.info("Stop requested")
        self._stopping.set()

    def abort(self) -> None:
        """Stop without waiting for queued notifications."""

        if not self._aborting.is_set():
            LOGGER.warning("Abort requested, queued notifications will be dropped")
        self._stopping.set()
        self._aborting.set()

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless stopped. Returns True when a stop was requested."""

        if seconds <= 0:
            return self._stopping.is_set()
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def wait_for_next_cycle(self) -> bool:
        """Block until the next listing is due. Returns True when stopping."""

        if self._last_check is None:
            return self._stopping.is_set()
        interval = self._config.poll_interval.total_seconds()
        remaining = self._last_check + interval - self._monotonic()
        if remaining > 0:
            LOGGER.debug("sleeping for %.1fs", remaining)
        return await self._sleep(remaining)

    async def _enqueue(self, queue: asyncio.Queue, entry) -> None:
        """Put ``entry`` on ``queue``, waiting for room unless a stop is requested."""

        if not queue.full():
            queue.put_nowait(entry)
            return
        await _unless_set(self._stopping, queue.put(entry))

    async def _process_item(self, item: PasteItem) -> Optional[bool]:
        """Fetch and match one paste. Returns None on failure, else whether it matched."""

        try:
            body = await _unless_set(self._stopping, self._feed.fetch_body(item))
            result = match_rules(body, self._rules)
        except _Interrupted:
            raise
        except Exception as exc:
            await self._enqueue(self.errors, _as_error(exc, FetchError, f"fetch {item.key}"))
            return None

        if not result.matched:
            LOGGER.debug("No match in paste %s", item.key)
            return False

        LOGGER.info("Paste %s matched %s", item.key, ", ".join(sorted(result.matches)))
        await self._enqueue(self.matches, PasteMatch(item=item.with_body(body), result=result))
        return True

    async def run_cycle(self) -> CycleStats:
        """Run one list/fetch/match/evict cycle."""

        self._last_check = self._monotonic()
        try:
            items = await _unless_set(self._stopping, self._feed.list_recent())
        except _Interrupted:
            LOGGER.info("Listing cancelled by stop request")
            return CycleStats()
        except Exception as exc:
            # The seen-set is left untouched; the next cycle retries the listing.
            error = _as_error(exc, ListError, "list recent pastes")
            try:
                await self._enqueue(self.errors, error)
            except _Interrupted:
                LOGGER.error("%s", error)
            return CycleStats(list_failed=True)

        skipped = fetched = failed = matched = 0
        try:
            for item in items:
                if self._stopping.is_set():
                    break
                if self._seen.has(item.key):
                    LOGGER.debug("skipping key %s as it was already checked", item.key)
                    skipped += 1
                    continue

                # Mark before fetching so a key listed twice is only fetched once.
                self._seen.mark(item.key)
                outcome = await self._process_item(item)
                fetched += 1
                if outcome is None:
                    failed += 1
                elif outcome:
                    matched += 1

                # Do not hammer the API.
                if await self._sleep(self._config.item_delay.total_seconds()):
                    break
        except _Interrupted:
            LOGGER.info("Paste processing cancelled by stop request")

        evicted = self._seen.evict_expired()
        stats = CycleStats(
            listed=len(items),
            skipped=skipped,
            fetched=fetched,
            failed=failed,
            matched=matched,
            evicted=evicted,
        )
        LOGGER.info(
            "Cycle complete: listed=%s, new=%s, failed=%s, matches=%s, evicted=%s",
            stats.listed,
            stats.fetched,
            stats.failed,
            stats.matched,
            stats.evicted,
        )
        return stats

    async def _dispatch_matches(self) -> None:
        while True:
            match = await self.matches.get()
            try:
                await self._notifier.send_match(match)
            except Exception as exc:
                await self.errors.put(_as_error(exc, DeliveryError, f"send match for {match.item.key}"))
            finally:
                self.matches.task_done()

    async def _report_errors(self) -> None:
        while True:
            error = await self.errors.get()
            try:
                LOGGER.error("%s", error)
                if self._config.mail_on_error:
                    try:
                        await self._notifier.send_error(error)
                    except Exception:
                        LOGGER.exception("Failed to send error notification")
            finally:
                self.errors.task_done()

    async def _flush(self) -> None:
        # Matches first: failed deliveries still land on the error queue.
        await self.matches.join()
        await self.errors.join()

    async def run(self) -> None:
        """Poll until ``stop`` is called, then flush both queues."""

        workers = [
            asyncio.create_task(self._dispatch_matches(), name="pastescope-matches"),
            asyncio.create_task(self._report_errors(), name="pastescope-errors"),
        ]
        try:
            while not await self.wait_for_next_cycle():
                await self.run_cycle()
            try:
                await _unless_set(self._aborting, self._flush())
            except _Interrupted:
                LOGGER.warning(
                    "Dropped %s queued matches and %s queued errors",
                    self.matches.qsize(),
                    self.errors.qsize(),
                )
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
