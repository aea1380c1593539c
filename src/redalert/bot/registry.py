"""Per-guild registry of alert destination channels.

Backed by the ``server_settings.red_alert_channels`` column. ``list_valid``
checks every registered channel against live Discord state and prunes the
ones that no longer resolve to a text channel, so the stored lists only
ever shrink outside of explicit ``add`` calls.
"""

import logging
import sqlite3
from pathlib import Path

import discord

from .discord_db import get_alert_channels, list_alert_channels, update_alert_channels

logger = logging.getLogger(__name__)

TEXT_CHANNEL_TYPES = (discord.TextChannel, discord.Thread)


class RegistryError(Exception):
    """The settings store could not be read or written."""


async def resolve_channel(client: discord.Client, channel_id: int):
    """Cached channel lookup, falling back to an API fetch."""
    channel = client.get_channel(channel_id)
    if channel is None:
        channel = await client.fetch_channel(channel_id)
    return channel


def is_text_channel(channel) -> bool:
    return isinstance(channel, TEXT_CHANNEL_TYPES)


class ChannelRegistry:
    def __init__(self, db_path: str | Path | None = None) -> None:
        self.db_path = db_path
        self._last_loaded: dict[int, list[int]] = {}

    # ------------------------------------------------------------------
    # Administrator operations
    # ------------------------------------------------------------------
    def list_channels(self, guild_id: int) -> list[int]:
        try:
            return get_alert_channels(guild_id, db_path=self.db_path)
        except sqlite3.Error as e:
            raise RegistryError(f"Could not read alert channels for guild {guild_id}: {e}") from e

    def add(self, guild_id: int, channel_id: int) -> bool:
        """Register a channel. Returns False if it was already registered."""
        added = False

        def _add(channels: list[int]) -> list[int]:
            nonlocal added
            if channel_id in channels:
                return channels
            added = True
            return channels + [channel_id]

        try:
            update_alert_channels(guild_id, _add, db_path=self.db_path)
        except sqlite3.Error as e:
            raise RegistryError(f"Could not add channel {channel_id} to guild {guild_id}: {e}") from e
        if added:
            logger.info(f"Added channel {channel_id} to guild {guild_id}'s alert channels")
        return added

    def remove(self, guild_id: int, channel_id: int) -> bool:
        """Unregister a channel. Returns False if it was not registered."""
        removed = False

        def _remove(channels: list[int]) -> list[int]:
            nonlocal removed
            removed = channel_id in channels
            return [c for c in channels if c != channel_id]

        try:
            update_alert_channels(guild_id, _remove, db_path=self.db_path)
        except sqlite3.Error as e:
            raise RegistryError(
                f"Could not remove channel {channel_id} from guild {guild_id}: {e}"
            ) from e
        if removed:
            logger.info(f"Removed channel {channel_id} from guild {guild_id}'s alert channels")
        return removed

    def configured(self) -> dict[int, list[int]]:
        """Every guild's stored channel list, as last persisted."""
        try:
            self._last_loaded = list_alert_channels(db_path=self.db_path)
        except sqlite3.Error as e:
            raise RegistryError(f"Could not list alert channels: {e}") from e
        return self._last_loaded

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    async def _check_channel(self, client: discord.Client, guild_id: int, channel_id: int) -> bool:
        try:
            channel = await resolve_channel(client, channel_id)
        except Exception as e:
            logger.warning(
                f"Channel {channel_id} in guild {guild_id} is not accessible "
                f"and will be removed: {e}"
            )
            return False
        if not is_text_channel(channel):
            logger.warning(
                f"Channel {channel_id} in guild {guild_id} is not a valid text channel "
                f"and will be removed"
            )
            return False
        return True

    async def list_valid(self, client: discord.Client) -> dict[int, list[int]]:
        """Validated channel map {guild_id: [channel_id, ...]} for guilds with channels.

        Unresolvable or non-text channels are dropped from the result and
        pruned from storage. When storage is unreadable, the last successfully
        loaded map is validated instead.
        """
        try:
            configured = self.configured()
        except RegistryError:
            logger.exception("Alert channel registry unavailable; using last loaded channels")
            configured = self._last_loaded

        valid_map: dict[int, list[int]] = {}
        for guild_id, channel_ids in configured.items():
            if not channel_ids:
                continue
            valid, invalid = [], []
            for channel_id in channel_ids:
                if await self._check_channel(client, guild_id, channel_id):
                    valid.append(channel_id)
                else:
                    invalid.append(channel_id)

            if invalid:
                logger.info(f"Removing {len(invalid)} invalid channels from guild {guild_id}")
                try:
                    update_alert_channels(
                        guild_id,
                        lambda current, bad=set(invalid): [c for c in current if c not in bad],
                        db_path=self.db_path,
                    )
                except sqlite3.Error:
                    logger.exception(f"Failed to prune invalid channels for guild {guild_id}")
                self._last_loaded[guild_id] = valid

            valid_map[guild_id] = valid
        return valid_map
