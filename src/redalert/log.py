"""Centralized logging configuration for the red alert relay."""

import logging
import sys
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
LOGS_DIR = PROJECT_ROOT / "logs"


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    name: str = "redalert",
) -> logging.Logger:
    """Configure the 'redalert' package logger with console + optional file handler.

    Call once at process startup from the entry script. Every redalert.*
    module logs through ``logging.getLogger(__name__)``. discord.py's own
    records are routed through the same handlers so the bot keeps a single
    log stream.
    """
    root = logging.getLogger("redalert")
    if root.handlers:
        return root  # already configured
    root.setLevel(level)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = []

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(fmt)
    handlers.append(console)

    if log_to_file:
        LOGS_DIR.mkdir(exist_ok=True)
        today = datetime.now().strftime("%Y-%m-%d")
        fh = logging.FileHandler(LOGS_DIR / f"{name}_{today}.log", encoding="utf-8")
        fh.setFormatter(fmt)
        handlers.append(fh)

    discord_log = logging.getLogger("discord")
    discord_log.setLevel(logging.WARNING)
    for handler in handlers:
        root.addHandler(handler)
        discord_log.addHandler(handler)

    return root
