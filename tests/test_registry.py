"""Tests for the per-guild channel registry and its self-healing validation."""

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from conftest import make_client, make_text_channel

from redalert.bot.discord_db import get_alert_channels
from redalert.bot.registry import ChannelRegistry, RegistryError


def test_add_is_idempotent(db):
    reg = ChannelRegistry(db)
    assert reg.add(1, 10) is True
    assert reg.add(1, 10) is False
    assert reg.list_channels(1) == [10]


def test_remove_is_idempotent(db):
    reg = ChannelRegistry(db)
    reg.add(1, 10)
    reg.add(1, 20)
    assert reg.remove(1, 10) is True
    assert reg.remove(1, 10) is False
    assert reg.list_channels(1) == [20]


def test_remove_from_unknown_guild(db):
    assert ChannelRegistry(db).remove(99, 10) is False


def test_guilds_are_independent(db):
    reg = ChannelRegistry(db)
    reg.add(1, 10)
    reg.add(2, 20)
    assert reg.configured() == {1: [10], 2: [20]}


def test_storage_errors_become_registry_errors(tmp_path):
    # A directory can't be opened as a database
    reg = ChannelRegistry(tmp_path)
    with pytest.raises(RegistryError):
        reg.list_channels(1)


@pytest.mark.asyncio
async def test_list_valid_prunes_missing_channels(db):
    reg = ChannelRegistry(db)
    for cid in (100, 200, 300):
        reg.add(1, cid)
    client = make_client({100: make_text_channel(100), 300: make_text_channel(300)})

    valid = await reg.list_valid(client)

    assert valid == {1: [100, 300]}
    assert get_alert_channels(1, db_path=db) == [100, 300]


@pytest.mark.asyncio
async def test_list_valid_prunes_non_text_channels(db):
    reg = ChannelRegistry(db)
    reg.add(1, 100)
    reg.add(1, 200)
    voice = MagicMock(spec=discord.VoiceChannel)
    client = make_client({100: make_text_channel(100), 200: voice})

    assert await reg.list_valid(client) == {1: [100]}
    assert reg.list_channels(1) == [100]


@pytest.mark.asyncio
async def test_list_valid_fetches_uncached_channels(db):
    reg = ChannelRegistry(db)
    reg.add(1, 100)
    client = make_client({})
    client.fetch_channel = AsyncMock(return_value=make_text_channel(100))

    assert await reg.list_valid(client) == {1: [100]}
    client.fetch_channel.assert_awaited_once_with(100)


@pytest.mark.asyncio
async def test_list_valid_skips_empty_guilds(db):
    reg = ChannelRegistry(db)
    reg.add(1, 100)
    reg.remove(1, 100)
    reg.add(2, 200)
    client = make_client({200: make_text_channel(200, guild_id=2)})

    assert await reg.list_valid(client) == {2: [200]}


@pytest.mark.asyncio
async def test_list_valid_is_stable_once_healed(db):
    reg = ChannelRegistry(db)
    for cid in (100, 200, 300):
        reg.add(1, cid)
    client = make_client({100: make_text_channel(100), 300: make_text_channel(300)})

    first = await reg.list_valid(client)
    client.fetch_channel.reset_mock()
    second = await reg.list_valid(client)

    assert first == second == {1: [100, 300]}
    client.fetch_channel.assert_not_awaited()


@pytest.mark.asyncio
async def test_list_valid_falls_back_to_last_loaded(db, monkeypatch):
    import redalert.bot.registry as registry_mod

    reg = ChannelRegistry(db)
    reg.add(1, 100)
    client = make_client({100: make_text_channel(100)})
    assert await reg.list_valid(client) == {1: [100]}

    def broken(db_path=None):
        raise registry_mod.sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(registry_mod, "list_alert_channels", broken)
    assert await reg.list_valid(client) == {1: [100]}


@pytest.mark.asyncio
async def test_unexpected_lookup_error_does_not_abort_other_guilds(db):
    reg = ChannelRegistry(db)
    reg.add(1, 100)
    reg.add(2, 200)
    client = make_client({200: make_text_channel(200, guild_id=2)})
    client.fetch_channel = AsyncMock(side_effect=RuntimeError("gateway hiccup"))

    assert await reg.list_valid(client) == {1: [], 2: [200]}
    assert reg.list_channels(1) == []
    assert reg.list_channels(2) == [200]
