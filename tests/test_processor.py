from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Optional

from pastescope.core.config import PollConfig
from pastescope.core.errors import DeliveryError, FetchError, ListError
from pastescope.core.models import PasteItem, PasteMatch
from pastescope.core.processor import CycleStats, PasteProcessor
from pastescope.core.rules_engine import build_rules

FAST = PollConfig(poll_interval=timedelta(0), item_delay=timedelta(0), queue_size=10)


class FakeFeed:
    def __init__(self, listings: list, bodies: Optional[dict] = None) -> None:
        self._listings = list(listings)
        self._bodies = bodies or {}
        self.list_calls = 0
        self.fetched: list[str] = []
        self.on_list = None

    async def list_recent(self) -> list[PasteItem]:
        self.list_calls += 1
        if self.on_list is not None:
            self.on_list(self.list_calls)
        listing = self._listings.pop(0) if self._listings else []
        if isinstance(listing, Exception):
            raise listing
        return [PasteItem(key=key) for key in listing]

    async def fetch_body(self, item: PasteItem) -> str:
        self.fetched.append(item.key)
        body = self._bodies.get(item.key, "")
        if isinstance(body, Exception):
            raise body
        return body


class FakeNotifier:
    def __init__(self, fail_matches: bool = False, fail_errors: bool = False) -> None:
        self.sent: list[PasteMatch] = []
        self.errors: list[Exception] = []
        self._fail_matches = fail_matches
        self._fail_errors = fail_errors

    async def send_match(self, match: PasteMatch) -> None:
        if self._fail_matches:
            raise DeliveryError("smtp down")
        self.sent.append(match)

    async def send_error(self, error: Exception) -> None:
        if self._fail_errors:
            raise DeliveryError("smtp down")
        self.errors.append(error)


RULES = build_rules(
    [
        {"keyword": "password", "type": "literal", "exceptions": ["example.com"]},
        {"keyword": "10.0.0.0/8", "type": "cidr"},
    ]
)


def _drain(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


def test_duplicate_key_in_one_listing_is_fetched_once() -> None:
    async def scenario() -> None:
        feed = FakeFeed([["a", "b", "a"]], {"a": "my password is hunter2", "b": "nothing"})
        processor = PasteProcessor(RULES, feed, FakeNotifier(), FAST)

        stats = await processor.run_cycle()

        assert feed.fetched == ["a", "b"]
        assert stats.listed == 3
        assert stats.skipped == 1
        assert stats.matched == 1
        matches = _drain(processor.matches)
        assert [m.item.key for m in matches] == ["a"]
        assert matches[0].item.body == "my password is hunter2"
        assert matches[0].result.matches == {"password": "my password is hunter2"}

    asyncio.run(scenario())


def test_failed_listing_reports_one_error_and_leaves_seen_set_alone() -> None:
    async def scenario() -> None:
        feed = FakeFeed([["a"], RuntimeError("connection reset")], {"a": "nothing"})
        processor = PasteProcessor(RULES, feed, FakeNotifier(), FAST)
        await processor.run_cycle()
        assert len(processor.seen) == 1

        stats = await processor.run_cycle()

        assert stats.list_failed
        assert feed.fetched == ["a"]
        assert len(processor.seen) == 1
        errors = _drain(processor.errors)
        assert len(errors) == 1
        assert isinstance(errors[0], ListError)
        assert "connection reset" in str(errors[0])

    asyncio.run(scenario())


def test_fetch_error_skips_item_and_continues() -> None:
    async def scenario() -> None:
        feed = FakeFeed(
            [["a", "b"]],
            {"a": FetchError("fetch paste a: unexpected status 503"), "b": "server 10.1.1.1"},
        )
        processor = PasteProcessor(RULES, feed, FakeNotifier(), FAST)

        stats = await processor.run_cycle()

        assert stats.failed == 1
        assert stats.matched == 1
        assert [str(e) for e in _drain(processor.errors)] == ["fetch paste a: unexpected status 503"]
        assert [m.result.matches for m in _drain(processor.matches)] == [{"10.0.0.0/8": "10.1.1.1"}]
        # A failed key stays marked; it is not retried until evicted.
        assert processor.seen.has("a")

    asyncio.run(scenario())


def test_unexpected_fetch_exception_is_wrapped() -> None:
    async def scenario() -> None:
        feed = FakeFeed([["a"]], {"a": ValueError("boom")})
        processor = PasteProcessor(RULES, feed, FakeNotifier(), FAST)

        await processor.run_cycle()

        (error,) = _drain(processor.errors)
        assert isinstance(error, FetchError)
        assert isinstance(error.__cause__, ValueError)

    asyncio.run(scenario())


def test_seen_keys_are_skipped_in_later_cycles() -> None:
    async def scenario() -> None:
        feed = FakeFeed([["a"], ["a", "b"]], {"a": "x", "b": "y"})
        processor = PasteProcessor(RULES, feed, FakeNotifier(), FAST)

        await processor.run_cycle()
        stats = await processor.run_cycle()

        assert feed.fetched == ["a", "b"]
        assert stats.skipped == 1

    asyncio.run(scenario())


def test_run_dispatches_matches_and_stops_cleanly() -> None:
    async def scenario() -> FakeNotifier:
        feed = FakeFeed([["a", "b"], ["c"]], {"a": "password: hunter2", "b": "clean", "c": "10.9.9.9"})
        notifier = FakeNotifier()
        processor = PasteProcessor(RULES, feed, notifier, FAST)

        def stop_after_second_listing(calls: int) -> None:
            if calls >= 2:
                processor.stop()

        feed.on_list = stop_after_second_listing
        await asyncio.wait_for(processor.run(), timeout=5)
        return notifier

    notifier = asyncio.run(scenario())

    assert [m.item.key for m in notifier.sent] == ["a"]
    assert notifier.errors == []


def test_delivery_failure_is_reported_and_escalated() -> None:
    async def scenario() -> FakeNotifier:
        feed = FakeFeed([["a"]], {"a": "my password is hunter2"})
        notifier = FakeNotifier(fail_matches=True)
        config = PollConfig(
            poll_interval=timedelta(0),
            item_delay=timedelta(0),
            queue_size=10,
            mail_on_error=True,
        )
        processor = PasteProcessor(RULES, feed, notifier, config)
        feed.on_list = lambda calls: processor.stop() if calls >= 2 else None

        await asyncio.wait_for(processor.run(), timeout=5)
        return notifier

    notifier = asyncio.run(scenario())

    assert notifier.sent == []
    assert len(notifier.errors) == 1
    assert isinstance(notifier.errors[0], DeliveryError)


def test_errors_are_only_logged_without_mail_on_error(caplog) -> None:
    async def scenario() -> FakeNotifier:
        feed = FakeFeed([ListError("fetch paste list: unexpected status 500: oops")])
        notifier = FakeNotifier()
        processor = PasteProcessor(RULES, feed, notifier, FAST)
        feed.on_list = lambda calls: processor.stop() if calls >= 2 else None

        await asyncio.wait_for(processor.run(), timeout=5)
        return notifier

    notifier = asyncio.run(scenario())

    assert notifier.errors == []
    assert "unexpected status 500" in caplog.text


def test_failing_error_notification_does_not_stop_the_worker() -> None:
    async def scenario() -> PasteProcessor:
        feed = FakeFeed([ListError("first"), ListError("second")])
        notifier = FakeNotifier(fail_errors=True)
        config = PollConfig(poll_interval=timedelta(0), item_delay=timedelta(0), mail_on_error=True)
        processor = PasteProcessor(RULES, feed, notifier, config)
        feed.on_list = lambda calls: processor.stop() if calls >= 3 else None

        await asyncio.wait_for(processor.run(), timeout=5)
        return processor

    processor = asyncio.run(scenario())

    assert processor.errors.empty()


def test_wait_respects_poll_interval_and_stop() -> None:
    async def scenario() -> None:
        clock = [100.0]
        config = PollConfig(poll_interval=timedelta(minutes=1), item_delay=timedelta(0))
        processor = PasteProcessor(RULES, FakeFeed([[]]), FakeNotifier(), config, monotonic=lambda: clock[0])

        # First cycle never waits.
        assert await processor.wait_for_next_cycle() is False
        await processor.run_cycle()

        # Already overdue: no sleep.
        clock[0] += 61
        assert await asyncio.wait_for(processor.wait_for_next_cycle(), timeout=1) is False

        # Not yet due: the wait ends as soon as stop is requested.
        await processor.run_cycle()
        waiter = asyncio.create_task(processor.wait_for_next_cycle())
        await asyncio.sleep(0)
        assert not waiter.done()
        processor.stop()
        assert await asyncio.wait_for(waiter, timeout=1) is True

    asyncio.run(scenario())


def test_stop_interrupts_item_delay() -> None:
    async def scenario() -> None:
        config = PollConfig(poll_interval=timedelta(0), item_delay=timedelta(seconds=30))
        feed = FakeFeed([["a", "b", "c"]], {"a": "x", "b": "y", "c": "z"})
        processor = PasteProcessor(RULES, feed, FakeNotifier(), config)

        cycle = asyncio.create_task(processor.run_cycle())
        await asyncio.sleep(0.05)
        processor.stop()
        stats = await asyncio.wait_for(cycle, timeout=1)

        assert feed.fetched == ["a"]
        assert stats.fetched == 1

    asyncio.run(scenario())


class StallingFeed(FakeFeed):
    """Feed whose calls hang until cancelled, like a dead connection."""

    def __init__(self, listings: list, stall_listing: bool = False) -> None:
        super().__init__(listings)
        self._stall_listing = stall_listing
        self.cancelled: list[str] = []

    async def _stall(self, name: str) -> None:
        try:
            await asyncio.sleep(3)
        except asyncio.CancelledError:
            self.cancelled.append(name)
            raise

    async def list_recent(self) -> list[PasteItem]:
        if self._stall_listing:
            await self._stall("list")
        return await super().list_recent()

    async def fetch_body(self, item: PasteItem) -> str:
        self.fetched.append(item.key)
        await self._stall(item.key)
        return ""


class StallingNotifier(FakeNotifier):
    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()
        self.cancelled = False

    async def send_match(self, match: PasteMatch) -> None:
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


def test_stop_cancels_fetch_in_flight() -> None:
    async def scenario() -> None:
        feed = StallingFeed([["a", "b"]])
        processor = PasteProcessor(RULES, feed, FakeNotifier(), FAST)

        cycle = asyncio.create_task(processor.run_cycle())
        await asyncio.sleep(0.05)
        processor.stop()
        stats = await asyncio.wait_for(cycle, timeout=0.5)

        assert feed.fetched == ["a"]
        assert feed.cancelled == ["a"]
        assert stats.fetched == 0
        assert processor.seen.has("a")
        assert processor.matches.empty()
        assert processor.errors.empty()

    asyncio.run(scenario())


def test_stop_cancels_listing_in_flight() -> None:
    async def scenario() -> None:
        feed = StallingFeed([["a"]], stall_listing=True)
        processor = PasteProcessor(RULES, feed, FakeNotifier(), FAST)

        cycle = asyncio.create_task(processor.run_cycle())
        await asyncio.sleep(0.05)
        processor.stop()
        stats = await asyncio.wait_for(cycle, timeout=0.5)

        assert feed.cancelled == ["list"]
        assert stats == CycleStats()
        assert processor.errors.empty()

    asyncio.run(scenario())


def test_stop_releases_cycle_blocked_on_full_queue() -> None:
    async def scenario() -> None:
        config = PollConfig(poll_interval=timedelta(0), item_delay=timedelta(0), queue_size=1)
        feed = FakeFeed([["a", "b"]], {"a": "password one", "b": "password two"})
        processor = PasteProcessor(RULES, feed, FakeNotifier(), config)

        # Nothing drains the queue, so the second match waits for room.
        cycle = asyncio.create_task(processor.run_cycle())
        await asyncio.sleep(0.05)
        assert not cycle.done()
        processor.stop()
        await asyncio.wait_for(cycle, timeout=0.5)

        assert [m.item.key for m in _drain(processor.matches)] == ["a"]

    asyncio.run(scenario())


def test_second_stop_abandons_stalled_delivery() -> None:
    async def scenario() -> None:
        feed = FakeFeed([["a"]], {"a": "my password is hunter2"})
        notifier = StallingNotifier()
        processor = PasteProcessor(RULES, feed, notifier, FAST)
        feed.on_list = lambda calls: processor.stop() if calls >= 2 else None

        runner = asyncio.create_task(processor.run())
        await asyncio.wait_for(notifier.started.wait(), timeout=1)
        assert processor.stopping
        assert not runner.done()

        processor.stop()
        await asyncio.wait_for(runner, timeout=0.5)

        assert notifier.cancelled
        assert notifier.sent == []

    asyncio.run(scenario())
