"""Shared test fixtures: temp settings DB and fake Discord objects."""

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh SQLite DB per test, also installed as the module default."""
    import redalert.bot.discord_db as discord_db

    db_path = tmp_path / "redalert_test.db"
    monkeypatch.setattr(discord_db, "DB_PATH", db_path)
    discord_db.init_db(db_path)
    return db_path


def make_text_channel(channel_id: int, guild_id: int = 1, name: str | None = None):
    """A MagicMock that passes isinstance(..., discord.TextChannel)."""
    channel = MagicMock(spec=discord.TextChannel)
    channel.id = channel_id
    channel.name = name or f"alerts-{channel_id}"
    channel.guild = MagicMock(id=guild_id)
    channel.send = AsyncMock()
    return channel


def not_found() -> discord.NotFound:
    return discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Channel")


def make_client(channels: dict[int, object]):
    """Fake client: known channels resolve from cache, everything else 404s."""
    client = MagicMock(spec=discord.Client)
    client.get_channel.side_effect = lambda cid: channels.get(cid)
    client.fetch_channel = AsyncMock(side_effect=not_found())
    return client
