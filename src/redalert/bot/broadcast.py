"""Fan-out of one alert to every registered channel across every guild.

Delivery is best effort: one attempt per channel per alert, no retry, no
redelivery queue. Each send is isolated, so a failing channel never blocks
or cancels the others, and the outcome of every attempt is returned in a
``BroadcastReport``.
"""

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import discord
from pydantic import BaseModel

from ..config import MAJOR_CITY_POPULATION
from ..core.alerts import (
    ALERT_TYPES,
    MISSILE,
    RED_ALERT,
    SYSTEM_TEST,
    Alert,
    AlertType,
    classify_alert,
)
from ..core.locations import LocationInfo, resolve
from .discord_db import AlertSettings, get_alert_settings, record_alert
from .notify import render_alert
from .registry import ChannelRegistry, RegistryError, is_text_channel, resolve_channel

logger = logging.getLogger(__name__)


class DeliveryResult(BaseModel):
    guild_id: int
    channel_id: int
    success: bool
    error: str | None = None


class BroadcastReport(BaseModel):
    alert_key: str
    alert_type: str
    location: str
    results: list[DeliveryResult] = []
    skipped_guilds: list[int] = []

    @property
    def targets(self) -> int:
        return len(self.results)

    @property
    def delivered(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failures(self) -> list[DeliveryResult]:
        return [r for r in self.results if not r.success]

    @property
    def guilds_reached(self) -> int:
        return len({r.guild_id for r in self.results if r.success})


def alert_allowed(settings: AlertSettings, alert_type: AlertType, location: LocationInfo) -> bool:
    """Apply a guild's alert-type and location filters."""
    types = settings.alert_types
    if types == "red_only" and alert_type is not RED_ALERT:
        return False
    if types == "critical" and alert_type not in (RED_ALERT, MISSILE):
        return False
    if types == "no_tests" and alert_type is SYSTEM_TEST:
        return False

    loc = settings.location_filter
    if loc == "major_cities" and (location.population or 0) < MAJOR_CITY_POPULATION:
        return False
    if loc == "gaza_priority" and location.zone != "gaza_envelope":
        return False
    if loc == "central_priority" and location.zone != "central":
        return False
    return True


async def _send(channel, payload: dict) -> None:
    await channel.send(
        content=payload["content"],
        embed=discord.Embed.from_dict(payload["embed"]),
        allowed_mentions=discord.AllowedMentions(everyone=True),
    )


class Broadcaster:
    def __init__(
        self,
        registry: ChannelRegistry,
        db_path: str | Path | None = None,
    ) -> None:
        self.registry = registry
        self.db_path = db_path

    def _settings_for(self, guild_id: int) -> AlertSettings:
        try:
            return get_alert_settings(guild_id, db_path=self.db_path)
        except sqlite3.Error:
            logger.exception(f"Could not load alert settings for guild {guild_id}; using defaults")
            return AlertSettings()

    async def _deliver(
        self, client: discord.Client, guild_id: int, channel_id: int, payload: dict,
    ) -> DeliveryResult:
        try:
            channel = await resolve_channel(client, channel_id)
            if not is_text_channel(channel):
                raise TypeError(f"channel {channel_id} is not a text channel")
            await _send(channel, payload)
        except Exception as e:
            logger.error(f"Error sending alert to channel {channel_id} in guild {guild_id}: {e}")
            return DeliveryResult(
                guild_id=guild_id, channel_id=channel_id, success=False, error=str(e) or repr(e),
            )
        return DeliveryResult(guild_id=guild_id, channel_id=channel_id, success=True)

    async def broadcast(
        self,
        alert: Alert,
        client: discord.Client,
        record: bool = True,
    ) -> BroadcastReport:
        """Deliver ``alert`` to every valid registered channel."""
        alert_type = classify_alert(alert.title)
        location = resolve(alert.location_text)
        report = BroadcastReport(
            alert_key=alert.key, alert_type=alert_type.key, location=location.name,
        )

        channel_map = await self.registry.list_valid(client)
        if not any(channel_map.values()):
            logger.warning("No valid channels configured for red alerts in any server")

        # One render per distinct settings combination, shared by every channel using it
        rendered: dict[tuple, dict] = {}
        sends = []
        for guild_id, channel_ids in channel_map.items():
            if not channel_ids:
                continue
            settings = self._settings_for(guild_id)
            if not alert_allowed(settings, alert_type, location):
                report.skipped_guilds.append(guild_id)
                continue
            variant = (settings.mention_everyone, settings.include_map, settings.detailed_info)
            if variant not in rendered:
                rendered[variant] = render_alert(alert, alert_type, location, settings)
            payload = rendered[variant]
            for channel_id in channel_ids:
                sends.append(self._deliver(client, guild_id, channel_id, payload))

        report.results = list(await asyncio.gather(*sends))
        if report.targets:
            logger.info(
                f"Sent alert to {report.delivered}/{report.targets} channels "
                f"across {report.guilds_reached} servers"
            )

        if record:
            try:
                record_alert(
                    report.alert_key, alert_type.key, location.name, location.district,
                    title=alert.title,
                    received_at=alert.received_at or datetime.now(timezone.utc),
                    targets=report.targets, delivered=report.delivered,
                    db_path=self.db_path,
                )
            except sqlite3.Error:
                logger.exception("Failed to record alert history")
        return report


async def send_test_alert(
    client: discord.Client,
    channel_id: int,
    registry: ChannelRegistry,
    alert_type_key: str = "test",
    location: str = "תל אביב - יפו",
    register: bool = True,
) -> bool:
    """Send a simulated alert to one channel, optionally registering it with its guild.

    Returns True when the test message was delivered.
    """
    alert_type = ALERT_TYPES.get(alert_type_key, SYSTEM_TEST)
    alert = Alert(
        title=alert_type.label,
        data=location,
        received_at=datetime.now(timezone.utc),
    )
    try:
        channel = await resolve_channel(client, channel_id)
        if not is_text_channel(channel):
            logger.warning(f"Test alert target {channel_id} is not a text channel")
            return False
        payload = render_alert(alert, alert_type, resolve(location), test=True)
        await _send(channel, payload)
    except Exception:
        logger.exception(f"Error sending test alert to channel {channel_id}")
        return False

    guild = getattr(channel, "guild", None)
    if register and guild is not None:
        try:
            if registry.add(guild.id, channel_id):
                logger.info(f"Registered test channel {channel_id} for guild {guild.id}")
        except RegistryError:
            logger.exception(f"Could not register test channel {channel_id}")
    return True
