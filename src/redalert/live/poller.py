"""Home Front Command feed poller.

One ``FeedPoller`` per process. Every ``poll_interval`` seconds it:

    1. skips the tick entirely if an alert was dispatched less than
       ``min_alert_interval`` seconds ago (burst guard)
    2. fetches the feed, up to ``fetch_attempts`` tries with a linear
       ``attempt * retry_delay`` pause between them
    3. normalizes whatever shape came back into Alert records
    4. hands each not-yet-seen alert to the broadcaster

Nothing raised inside a tick escapes it; a failed tick is logged and the
next one starts fresh. Clock, sleep and fetch are injectable for tests.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import aiohttp
import discord
from discord.ext import tasks

from ..bot.broadcast import Broadcaster, BroadcastReport
from ..bot.registry import ChannelRegistry
from ..config import FEED, FeedConfig
from ..core.alerts import Alert, FeedDecodeError, parse_feed
from ..core.dedup import AlertDeduplicator

logger = logging.getLogger(__name__)

FETCH_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


async def fetch_feed_text(session: aiohttp.ClientSession, config: FeedConfig = FEED) -> str:
    """GET the alert feed and return the raw body text."""
    async with session.get(config.url, headers=config.headers) as resp:
        resp.raise_for_status()
        raw = await resp.read()
    # The feed sends UTF-8 (sometimes with a BOM) regardless of its headers
    return raw.decode("utf-8-sig", errors="replace")


class FeedPoller:
    def __init__(
        self,
        client: discord.Client,
        registry: ChannelRegistry,
        broadcaster: Broadcaster,
        config: FeedConfig = FEED,
        fetch: Callable[[], Awaitable[str]] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.registry = registry
        self.broadcaster = broadcaster
        self.config = config
        self.dedup = AlertDeduplicator(config.dedup_capacity)
        self._fetch = fetch or self._fetch_http
        self._clock = clock
        self._sleep = sleep
        self._session: aiohttp.ClientSession | None = None

        self.last_dispatch_at: float | None = None
        self._last_non_json_log: float | None = None
        self._in_progress = False
        self._loop = tasks.loop(seconds=config.poll_interval)(self.tick)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._loop.is_running()

    async def start(self) -> None:
        """Validate registered channels once, then begin polling."""
        if self.running:
            return
        logger.info("Starting Red Alert tracking system...")
        try:
            await self.registry.list_valid(self.client)
        except Exception:
            logger.exception("Initial alert channel validation failed")
        self._loop.start()
        logger.info(f"Red Alert tracking started (every {self.config.poll_interval:.0f}s)")

    async def stop(self) -> None:
        if self._loop.is_running():
            self._loop.cancel()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.info("Red Alert tracking stopped")

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------
    async def _fetch_http(self) -> str:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout),
            )
        return await fetch_feed_text(self._session, self.config)

    async def fetch_with_retry(self) -> str | None:
        """Raw feed body, or None once every attempt has failed."""
        attempts = self.config.fetch_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await self._fetch()
            except FETCH_ERRORS as e:
                logger.info(
                    f"Red Alert API fetch attempt {attempt} failed: {str(e) or type(e).__name__}"
                )
                if attempt < attempts:
                    await self._sleep(self.config.retry_delay * attempt)
        logger.warning(
            f"Red Alert API unavailable after {attempts} attempts; will try again next tick"
        )
        return None

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    def in_cooldown(self) -> bool:
        if self.last_dispatch_at is None:
            return False
        return self._clock() - self.last_dispatch_at < self.config.min_alert_interval

    def _parse(self, text: str) -> list[Alert]:
        try:
            return parse_feed(text, received_at=datetime.now(timezone.utc))
        except FeedDecodeError:
            now = self._clock()
            if (
                self._last_non_json_log is None
                or now - self._last_non_json_log >= self.config.non_json_log_interval
            ):
                logger.info(
                    "Received non-JSON data from Red Alert API - this is usually normal "
                    "when there are no active alerts"
                )
                self._last_non_json_log = now
            return []

    async def tick(self) -> list[BroadcastReport]:
        """Run one poll cycle. Returns a report per dispatched alert."""
        if self._in_progress:
            logger.debug("Previous alert poll still running; skipping tick")
            return []
        self._in_progress = True
        try:
            return await self._poll_once()
        except Exception:
            logger.exception("Error fetching red alerts")
            return []
        finally:
            self._in_progress = False

    async def _poll_once(self) -> list[BroadcastReport]:
        if self.in_cooldown():
            return []

        text = await self.fetch_with_retry()
        if text is None:
            return []

        reports = []
        for alert in self._parse(text):
            if not self.dedup.should_dispatch(alert):
                continue
            self.last_dispatch_at = self._clock()
            logger.info(f"New alert: {alert.title or 'alert'} @ {alert.location_text or '?'}")
            try:
                reports.append(await self.broadcaster.broadcast(alert, self.client))
            except Exception:
                logger.exception(f"Error sending alert {alert.key} to channels")
        return reports
