"""Tests for the feed poller: cooldown, retry, dedup, overlap and logging."""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock, call

import aiohttp
import pytest

from redalert.bot.broadcast import BroadcastReport
from redalert.config import FeedConfig
from redalert.live.poller import FeedPoller

SDEROT = {"alertDate": "2024-01-01 12:00:00", "title": "צבע אדום", "data": "שדרות"}
ASHKELON = {"alertDate": "2024-01-01 12:00:40", "title": "צבע אדום", "data": "אשקלון"}


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _report(alert, client):
    return BroadcastReport(alert_key=alert.key, alert_type="red_alert", location="x")


def make_poller(fetch, clock=None, sleep=None, config=None):
    broadcaster = MagicMock()
    broadcaster.broadcast = AsyncMock(side_effect=_report)
    registry = MagicMock()
    registry.list_valid = AsyncMock(return_value={})
    poller = FeedPoller(
        MagicMock(),
        registry,
        broadcaster,
        config=config or FeedConfig(),
        fetch=fetch,
        clock=clock or FakeClock(),
        sleep=sleep or AsyncMock(),
    )
    return poller, broadcaster


@pytest.mark.asyncio
async def test_new_alert_is_broadcast_once():
    fetch = AsyncMock(return_value=json.dumps([SDEROT]))
    clock = FakeClock()
    poller, broadcaster = make_poller(fetch, clock=clock)

    assert len(await poller.tick()) == 1
    clock.now += 60
    assert await poller.tick() == []

    broadcaster.broadcast.assert_awaited_once()
    assert broadcaster.broadcast.await_args.args[0].location_text == "שדרות"


@pytest.mark.asyncio
async def test_cooldown_suppresses_ticks_after_dispatch():
    fetch = AsyncMock(return_value=json.dumps([SDEROT]))
    clock = FakeClock(1000.0)
    poller, broadcaster = make_poller(fetch, clock=clock)

    await poller.tick()
    assert poller.last_dispatch_at == 1000.0

    # A different alert 5s later is not even fetched
    fetch.return_value = json.dumps([ASHKELON])
    clock.now = 1005.0
    assert poller.in_cooldown()
    assert await poller.tick() == []
    assert fetch.await_count == 1

    # Past the cooldown it goes out
    clock.now = 1070.0
    reports = await poller.tick()
    assert [r.alert_key for r in reports] == ["2024-01-01 12:00:40-צבע אדום-אשקלון"]
    assert broadcaster.broadcast.await_count == 2


@pytest.mark.asyncio
async def test_empty_responses_dispatch_nothing():
    fetch = AsyncMock(side_effect=["", "\ufeff", "[]", "{}", '{"data": []}'])
    poller, broadcaster = make_poller(fetch)
    for _ in range(5):
        assert await poller.tick() == []
    broadcaster.broadcast.assert_not_awaited()
    assert poller.last_dispatch_at is None


@pytest.mark.asyncio
async def test_retry_backoff_then_success():
    fetch = AsyncMock(side_effect=[
        aiohttp.ClientError("reset"),
        asyncio.TimeoutError(),
        json.dumps(SDEROT),
    ])
    sleep = AsyncMock()
    poller, broadcaster = make_poller(fetch, sleep=sleep)

    assert len(await poller.tick()) == 1
    assert fetch.await_count == 3
    assert sleep.await_args_list == [call(1.0), call(2.0)]


@pytest.mark.asyncio
async def test_retries_exhausted_skips_tick():
    fetch = AsyncMock(side_effect=aiohttp.ClientError("down"))
    sleep = AsyncMock()
    poller, broadcaster = make_poller(fetch, sleep=sleep)

    assert await poller.fetch_with_retry() is None
    assert fetch.await_count == 3
    assert sleep.await_count == 2

    fetch.side_effect = None
    fetch.return_value = json.dumps([SDEROT])
    assert len(await poller.tick()) == 1


@pytest.mark.asyncio
async def test_unexpected_errors_do_not_escape_tick():
    fetch = AsyncMock(side_effect=ValueError("bug"))
    poller, _ = make_poller(fetch)
    assert await poller.tick() == []
    assert not poller._in_progress


@pytest.mark.asyncio
async def test_broadcast_failure_still_dedups():
    fetch = AsyncMock(return_value=json.dumps([SDEROT]))
    clock = FakeClock()
    poller, broadcaster = make_poller(fetch, clock=clock)
    broadcaster.broadcast.side_effect = RuntimeError("discord down")

    assert await poller.tick() == []
    clock.now += 60
    await poller.tick()
    broadcaster.broadcast.assert_awaited_once()


@pytest.mark.asyncio
async def test_non_json_logged_at_most_every_ten_minutes(caplog):
    caplog.set_level(logging.INFO, logger="redalert.live.poller")
    fetch = AsyncMock(return_value="<html>blocked</html>")
    clock = FakeClock(0.0)
    poller, broadcaster = make_poller(fetch, clock=clock)

    for t in (0.0, 10.0, 20.0, 599.0, 600.0):
        clock.now = t
        assert await poller.tick() == []

    notices = [r for r in caplog.records if "non-JSON" in r.getMessage()]
    assert len(notices) == 2
    broadcaster.broadcast.assert_not_awaited()


@pytest.mark.asyncio
async def test_overlapping_ticks_are_skipped():
    gate = asyncio.Event()

    async def slow_fetch():
        await gate.wait()
        return json.dumps([SDEROT])

    poller, broadcaster = make_poller(slow_fetch)
    first = asyncio.create_task(poller.tick())
    await asyncio.sleep(0)

    assert await poller.tick() == []
    gate.set()
    assert len(await first) == 1
    broadcaster.broadcast.assert_awaited_once()


@pytest.mark.asyncio
async def test_multiple_alerts_in_one_response():
    fetch = AsyncMock(return_value=json.dumps({"data": [SDEROT, ASHKELON]}))
    poller, broadcaster = make_poller(fetch)
    assert len(await poller.tick()) == 2
    assert len(poller.dedup) == 2


@pytest.mark.asyncio
async def test_start_validates_channels_then_loops():
    fetch = AsyncMock(return_value="")
    poller, _ = make_poller(fetch)
    try:
        await poller.start()
        assert poller.running
        poller.registry.list_valid.assert_awaited_once()

        await poller.start()
        poller.registry.list_valid.assert_awaited_once()
    finally:
        await poller.stop()
