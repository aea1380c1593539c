"""Red Alert Discord bot: admin slash commands + the live feed poller.

Administrators register channels per guild with /setup-redalert; the
poller (started on first ready) fans every new Home Front Command alert
out to all of them. Preferences and history live in SQLite.
"""

import asyncio
import logging
import os
from pathlib import Path

import discord
from discord import app_commands
from discord.ext import commands

from ..config import ALERT_TYPE_FILTERS, LOCATION_FILTERS
from ..core.alerts import ALERT_TYPES
from ..core.locations import resolve
from ..live.poller import FeedPoller
from .broadcast import Broadcaster, send_test_alert
from .discord_db import (
    get_alert_history,
    get_alert_settings,
    reset_alert_settings,
    summarize_history,
    update_alert_settings,
)
from .notify import (
    _channel_list_embed,
    _error_embed,
    _history_embed,
    _removed_embed,
    _settings_embed,
    _settings_updated_embed,
    _setup_embed,
    _setup_test_embed,
    _test_sent_embed,
)
from .registry import ChannelRegistry, RegistryError, is_text_channel

logger = logging.getLogger(__name__)

TEST_LOCATIONS = ["תל אביב - יפו", "ירושלים", "חיפה", "שדרות", "אשקלון", "קריית שמונה"]
HISTORY_LOCATIONS = ["all", "תל אביב", "ירושלים", "חיפה", "שדרות", "אשקלון", "עוטף עזה"]


def poller_enabled() -> bool:
    """ENABLE_ALERT_POLLER=0 runs the bot for admin commands only."""
    return os.environ.get("ENABLE_ALERT_POLLER", "1").strip().lower() not in ("0", "false", "no")


class RedAlertBot(commands.Bot):
    def __init__(self, db_path: str | Path | None = None, enable_poller: bool = True) -> None:
        intents = discord.Intents.default()
        super().__init__(command_prefix="!", intents=intents)
        self.db_path = db_path
        self.registry = ChannelRegistry(db_path)
        self.broadcaster = Broadcaster(self.registry, db_path)
        self.poller = FeedPoller(self, self.registry, self.broadcaster)
        self.enable_poller = enable_poller

    async def setup_hook(self) -> None:
        await self.tree.sync()
        logger.info(f"Synced {len(self.tree.get_commands())} slash commands")

    async def on_ready(self) -> None:
        logger.info(f"Bot connected as {self.user} (ID: {self.user.id})")
        logger.info(f"Bot is in {len(self.guilds)} servers")
        await self.change_presence(
            activity=discord.Activity(
                type=discord.ActivityType.watching,
                name="Red Alerts \U0001f6a8",
            )
        )
        if self.enable_poller and not self.poller.running:
            await self.poller.start()

    async def close(self) -> None:
        await self.poller.stop()
        await super().close()


async def _reply(interaction: discord.Interaction, embed: dict) -> None:
    """Ephemeral embed reply, whether or not the interaction was deferred."""
    embed = discord.Embed.from_dict(embed)
    if interaction.response.is_done():
        await interaction.followup.send(embed=embed, ephemeral=True)
    else:
        await interaction.response.send_message(embed=embed, ephemeral=True)


def make_bot(db_path: str | Path | None = None) -> RedAlertBot:
    """Create the bot and register its admin slash commands."""
    bot = RedAlertBot(db_path=db_path, enable_poller=poller_enabled())
    registry = bot.registry

    @bot.tree.error
    async def on_app_command_error(
        interaction: discord.Interaction, error: app_commands.AppCommandError,
    ) -> None:
        name = interaction.command.name if interaction.command else "?"
        logger.error(f"Slash command /{name} failed", exc_info=error)
        await _reply(interaction, _error_embed(
            "Command failed", "An unexpected error occurred. Please try again later.",
        ))

    # ------------------------------------------------------------------
    # Channel management
    # ------------------------------------------------------------------
    @bot.tree.command(
        name="setup-redalert",
        description="Set up Red Alert notifications in this channel",
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def setup_redalert(interaction: discord.Interaction) -> None:
        channel = interaction.channel
        if not isinstance(channel, discord.TextChannel):
            await _reply(interaction, _error_embed(
                "Invalid channel", "This command can only be used in a text channel.",
            ))
            return

        await interaction.response.defer(ephemeral=True)
        try:
            added = await asyncio.to_thread(registry.add, interaction.guild_id, channel.id)
            channels = await asyncio.to_thread(registry.list_channels, interaction.guild_id)
        except RegistryError as e:
            logger.exception("Error setting up red alert channel")
            await _reply(interaction, _error_embed("Setup failed", str(e)))
            return

        if not added:
            await _reply(interaction, _error_embed(
                "Already set up",
                "This channel is already set up for Red Alert notifications.",
            ))
            return

        guild_name = interaction.guild.name if interaction.guild else ""
        await _reply(interaction, _setup_embed(channel.id, guild_name, len(channels)))
        await channel.send(embed=discord.Embed.from_dict(_setup_test_embed()))
        logger.info(f"Red alert channel {channel.id} set up in guild {interaction.guild_id}")

    @bot.tree.command(
        name="remove-redalert",
        description="Remove Red Alert notifications from a channel",
    )
    @app_commands.describe(channel="Channel to remove (defaults to this one)")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def remove_redalert(
        interaction: discord.Interaction, channel: discord.TextChannel | None = None,
    ) -> None:
        target_id = channel.id if channel else interaction.channel_id
        try:
            removed = await asyncio.to_thread(registry.remove, interaction.guild_id, target_id)
        except RegistryError as e:
            logger.exception("Error removing red alert channel")
            await _reply(interaction, _error_embed("Removal failed", str(e)))
            return

        if not removed:
            await _reply(interaction, _error_embed(
                "Not configured",
                f"<#{target_id}> is not set up for Red Alert notifications.",
            ))
            return
        await _reply(interaction, _removed_embed(target_id))

    @bot.tree.command(
        name="list-redalert",
        description="List all channels configured for Red Alert notifications",
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def list_redalert(interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        guild_id = interaction.guild_id
        try:
            before = await asyncio.to_thread(registry.list_channels, guild_id)
        except RegistryError as e:
            await _reply(interaction, _error_embed("Could not load channels", str(e)))
            return

        valid = (await registry.list_valid(bot)).get(guild_id, [])
        active = []
        for channel_id in valid:
            channel = bot.get_channel(channel_id)
            active.append((channel_id, channel.name if channel else "unknown"))
        await _reply(interaction, _channel_list_embed(active, removed=len(before) - len(valid)))

    # ------------------------------------------------------------------
    # Testing & history
    # ------------------------------------------------------------------
    @bot.tree.command(
        name="test-redalert",
        description="Send a simulated Red Alert to this channel",
    )
    @app_commands.describe(
        alert_type="Type of alert to simulate",
        location="Location to simulate",
    )
    @app_commands.choices(
        alert_type=[app_commands.Choice(name=t.label, value=t.key) for t in ALERT_TYPES.values()],
        location=[app_commands.Choice(name=loc, value=loc) for loc in TEST_LOCATIONS],
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def test_redalert(
        interaction: discord.Interaction,
        alert_type: app_commands.Choice[str] | None = None,
        location: app_commands.Choice[str] | None = None,
    ) -> None:
        if not is_text_channel(interaction.channel):
            await _reply(interaction, _error_embed(
                "Invalid channel", "This command can only be used in a text channel.",
            ))
            return

        await interaction.response.defer(ephemeral=True)
        type_key = alert_type.value if alert_type else "test"
        place = location.value if location else TEST_LOCATIONS[0]
        sent = await send_test_alert(
            bot, interaction.channel_id, registry,
            alert_type_key=type_key, location=place, register=False,
        )
        if not sent:
            await _reply(interaction, _error_embed(
                "Test failed", "Could not send the test alert to this channel.",
            ))
            return
        await _reply(interaction, _test_sent_embed(ALERT_TYPES[type_key], resolve(place)))

    @bot.tree.command(
        name="redalert-history",
        description="Show recent Red Alert activity",
    )
    @app_commands.describe(days="How many days back (1-30)", location="Filter by location")
    @app_commands.choices(
        location=[app_commands.Choice(name=loc, value=loc) for loc in HISTORY_LOCATIONS],
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def redalert_history(
        interaction: discord.Interaction,
        days: app_commands.Range[int, 1, 30] = 7,
        location: app_commands.Choice[str] | None = None,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        place = location.value if location else "all"
        rows = await asyncio.to_thread(
            get_alert_history, days, place, None, bot.db_path,
        )
        await _reply(interaction, _history_embed(days, place, rows, summarize_history(rows)))

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------
    settings_group = app_commands.Group(
        name="redalert-settings",
        description="Configure Red Alert notifications for this server",
        default_permissions=discord.Permissions(administrator=True),
        guild_only=True,
    )

    @settings_group.command(name="view", description="Show current Red Alert settings")
    async def settings_view(interaction: discord.Interaction) -> None:
        settings = await asyncio.to_thread(
            get_alert_settings, interaction.guild_id, bot.db_path,
        )
        try:
            channels = await asyncio.to_thread(registry.list_channels, interaction.guild_id)
        except RegistryError:
            logger.exception("Could not load alert channels for settings view")
            channels = []
        guild_name = interaction.guild.name if interaction.guild else ""
        await _reply(interaction, _settings_embed(settings, guild_name, channels))

    @settings_group.command(name="notifications", description="Configure notification behaviour")
    @app_commands.describe(
        mention_everyone="Ping @everyone on alerts",
        include_map="Include a map link",
        detailed_info="Include shelter time and population",
    )
    async def settings_notifications(
        interaction: discord.Interaction,
        mention_everyone: bool | None = None,
        include_map: bool | None = None,
        detailed_info: bool | None = None,
    ) -> None:
        changes = {
            "mention_everyone": mention_everyone,
            "include_map": include_map,
            "detailed_info": detailed_info,
        }
        labels = {
            "mention_everyone": "Mention everyone",
            "include_map": "Include maps",
            "detailed_info": "Detailed info",
        }
        made = [
            f"**{labels[k]}:** {'Enabled' if v else 'Disabled'}"
            for k, v in changes.items() if v is not None
        ]
        if not made:
            await _reply(interaction, _error_embed(
                "No changes", "Pick at least one option to change.",
            ))
            return
        await asyncio.to_thread(
            lambda: update_alert_settings(interaction.guild_id, db_path=bot.db_path, **changes)
        )
        await _reply(interaction, _settings_updated_embed("Notification Settings Updated", made))

    @settings_group.command(name="filters", description="Configure which alerts are delivered")
    @app_commands.describe(
        alert_types="Which alert types to deliver",
        location_filter="Which locations to deliver",
    )
    @app_commands.choices(
        alert_types=[app_commands.Choice(name=v, value=k) for k, v in ALERT_TYPE_FILTERS.items()],
        location_filter=[
            app_commands.Choice(name=v, value=k) for k, v in LOCATION_FILTERS.items()
        ],
    )
    async def settings_filters(
        interaction: discord.Interaction,
        alert_types: app_commands.Choice[str] | None = None,
        location_filter: app_commands.Choice[str] | None = None,
    ) -> None:
        made = []
        if alert_types:
            made.append(f"**Alert Types:** {alert_types.name}")
        if location_filter:
            made.append(f"**Location Filter:** {location_filter.name}")
        if not made:
            await _reply(interaction, _error_embed(
                "No changes", "Pick at least one filter to change.",
            ))
            return
        await asyncio.to_thread(
            lambda: update_alert_settings(
                interaction.guild_id,
                db_path=bot.db_path,
                alert_types=alert_types.value if alert_types else None,
                location_filter=location_filter.value if location_filter else None,
            )
        )
        await _reply(interaction, _settings_updated_embed("Filter Settings Updated", made))

    @settings_group.command(name="reset", description="Restore default Red Alert settings")
    async def settings_reset(interaction: discord.Interaction) -> None:
        await asyncio.to_thread(reset_alert_settings, interaction.guild_id, bot.db_path)
        await _reply(interaction, _settings_updated_embed(
            "Settings Reset", ["All Red Alert settings restored to defaults"],
        ))

    bot.tree.add_command(settings_group)
    return bot
