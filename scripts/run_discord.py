#!/usr/bin/env python
"""
Run the Red Alert relay Discord bot.

Usage:
    python scripts/run_discord.py

Requires DISCORD_BOT_TOKEN in .env (or environment).

Setup:
    1. Create a bot at https://discord.com/developers/applications
    2. Generate invite URL with bot + applications.commands scopes
       (Send Messages, Embed Links and Mention Everyone permissions)
    3. Set DISCORD_BOT_TOKEN in .env
    4. Run /setup-redalert in each channel that should receive alerts

Optional:
    REDALERT_DB_PATH       SQLite location (default data/redalert.db)
    RED_ALERT_CHANNEL_IDS  comma-separated channel IDs carried over from
                           single-channel deployments on first migration
    ENABLE_ALERT_POLLER    set to 0 to run admin commands without polling
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

from redalert.bot.discord_bot import make_bot
from redalert.bot.discord_db import init_db
from redalert.log import setup_logging


def main() -> int:
    setup_logging(name="discord_bot")

    token = os.environ.get("DISCORD_BOT_TOKEN")
    if not token:
        print("ERROR: DISCORD_BOT_TOKEN not set. Add it to .env or environment.")
        return 1

    legacy = [
        c.strip() for c in os.environ.get("RED_ALERT_CHANNEL_IDS", "").split(",") if c.strip()
    ]
    init_db(legacy_channel_ids=legacy)

    bot = make_bot()
    bot.run(token, log_handler=None)  # logging already configured
    return 0


if __name__ == "__main__":
    sys.exit(main())
