"""SQLite persistence for the Discord bot: per-guild alert settings and history.

Schema:
    server_settings - one row per guild: alert channel IDs (JSON array of
                      snowflake strings) and alert preferences (JSON object)
    alert_history   - one row per dispatched alert with delivery totals

Database location: data/redalert.db (override with REDALERT_DB_PATH)
"""

import json
import os
import sqlite3
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import BaseModel, ValidationError

from ..config import ALERT_TYPE_FILTERS, LOCATION_FILTERS

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent
DB_PATH = Path(os.environ.get("REDALERT_DB_PATH") or PROJECT_ROOT / "data" / "redalert.db")

_local = threading.local()


class AlertSettings(BaseModel):
    mention_everyone: bool = True
    include_map: bool = True
    detailed_info: bool = True
    alert_types: str = "all"
    location_filter: str = "all"


def get_db(db_path: str | Path | None = None) -> sqlite3.Connection:
    """Return a thread-local SQLite connection."""
    path = str(db_path or DB_PATH)
    if not hasattr(_local, "connections"):
        _local.connections = {}
    if path not in _local.connections:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        _local.connections[path] = conn
    return _local.connections[path]


def init_db(
    db_path: str | Path | None = None,
    legacy_channel_ids: list[str] | None = None,
) -> None:
    """Create tables if they don't exist.

    ``legacy_channel_ids`` (from RED_ALERT_CHANNEL_IDS) are copied into every
    known guild the first time the channel column is added to an older DB.
    """
    conn = get_db(db_path)
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS server_settings (
            guild_id            TEXT PRIMARY KEY,
            red_alert_channels  TEXT NOT NULL DEFAULT '[]',
            red_alert_settings  TEXT,
            updated_at          TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS alert_history (
            id           INTEGER PRIMARY KEY AUTOINCREMENT,
            alert_key    TEXT NOT NULL,
            title        TEXT,
            alert_type   TEXT NOT NULL,
            location     TEXT NOT NULL,
            district     TEXT NOT NULL,
            received_at  TEXT NOT NULL,
            targets      INTEGER NOT NULL DEFAULT 0,
            delivered    INTEGER NOT NULL DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_history_received
            ON alert_history(received_at DESC);
    """)
    _migrate(conn, legacy_channel_ids or [])
    conn.commit()


def _migrate(conn: sqlite3.Connection, legacy_channel_ids: list[str]) -> None:
    """Add columns introduced after the initial server_settings schema."""
    existing = {
        row[1] for row in conn.execute("PRAGMA table_info(server_settings)").fetchall()
    }
    if "red_alert_settings" not in existing:
        conn.execute("ALTER TABLE server_settings ADD COLUMN red_alert_settings TEXT")
    if "red_alert_channels" not in existing:
        conn.execute(
            "ALTER TABLE server_settings ADD COLUMN red_alert_channels TEXT NOT NULL DEFAULT '[]'"
        )
        if legacy_channel_ids:
            conn.execute(
                "UPDATE server_settings SET red_alert_channels = ?",
                (json.dumps([str(c) for c in legacy_channel_ids]),),
            )


def _ensure_guild(conn: sqlite3.Connection, guild_id: int) -> None:
    conn.execute(
        "INSERT OR IGNORE INTO server_settings (guild_id) VALUES (?)", (str(guild_id),),
    )


def _decode_channels(raw: str | None) -> list[int]:
    try:
        values = json.loads(raw or "[]")
    except json.JSONDecodeError:
        return []
    if not isinstance(values, list):
        return []
    out = []
    for v in values:
        try:
            out.append(int(v))
        except (TypeError, ValueError):
            continue
    return out


# ---------------------------------------------------------------------------
# Alert channels
# ---------------------------------------------------------------------------

def get_alert_channels(guild_id: int, db_path: str | Path | None = None) -> list[int]:
    """Channel IDs registered for alerts in a guild. Empty if none."""
    conn = get_db(db_path)
    row = conn.execute(
        "SELECT red_alert_channels FROM server_settings WHERE guild_id = ?",
        (str(guild_id),),
    ).fetchone()
    return _decode_channels(row["red_alert_channels"]) if row else []


def list_alert_channels(db_path: str | Path | None = None) -> dict[int, list[int]]:
    """All guilds with their registered alert channels (empty lists included)."""
    conn = get_db(db_path)
    rows = conn.execute(
        "SELECT guild_id, red_alert_channels FROM server_settings ORDER BY guild_id"
    ).fetchall()
    return {int(r["guild_id"]): _decode_channels(r["red_alert_channels"]) for r in rows}


def update_alert_channels(
    guild_id: int,
    update: Callable[[list[int]], list[int]],
    db_path: str | Path | None = None,
) -> list[int]:
    """Read-modify-write a guild's channel list inside one write transaction.

    ``update`` receives the current list and returns the new one. Returns
    the stored list.
    """
    conn = get_db(db_path)
    conn.execute("BEGIN IMMEDIATE")
    try:
        _ensure_guild(conn, guild_id)
        row = conn.execute(
            "SELECT red_alert_channels FROM server_settings WHERE guild_id = ?",
            (str(guild_id),),
        ).fetchone()
        channels = update(_decode_channels(row["red_alert_channels"]))
        conn.execute(
            "UPDATE server_settings SET red_alert_channels = ?, "
            "updated_at = datetime('now') WHERE guild_id = ?",
            (json.dumps([str(c) for c in channels]), str(guild_id)),
        )
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    return channels


# ---------------------------------------------------------------------------
# Alert preferences
# ---------------------------------------------------------------------------

def get_alert_settings(guild_id: int, db_path: str | Path | None = None) -> AlertSettings:
    """Guild alert preferences; defaults when unset or unreadable."""
    conn = get_db(db_path)
    row = conn.execute(
        "SELECT red_alert_settings FROM server_settings WHERE guild_id = ?",
        (str(guild_id),),
    ).fetchone()
    if not row or not row["red_alert_settings"]:
        return AlertSettings()
    try:
        return AlertSettings.model_validate_json(row["red_alert_settings"])
    except ValidationError:
        return AlertSettings()


def update_alert_settings(
    guild_id: int,
    db_path: str | Path | None = None,
    **changes,
) -> AlertSettings:
    """Merge ``changes`` into the guild's preferences. Returns the stored settings."""
    changes = {k: v for k, v in changes.items() if v is not None}
    unknown = set(changes) - set(AlertSettings.model_fields)
    if unknown:
        raise ValueError(f"Unknown alert settings: {sorted(unknown)}")
    if changes.get("alert_types", "all") not in ALERT_TYPE_FILTERS:
        raise ValueError(f"Unknown alert_types filter: {changes['alert_types']}")
    if changes.get("location_filter", "all") not in LOCATION_FILTERS:
        raise ValueError(f"Unknown location filter: {changes['location_filter']}")

    current = get_alert_settings(guild_id, db_path=db_path)
    updated = current.model_copy(update=changes)
    conn = get_db(db_path)
    try:
        _ensure_guild(conn, guild_id)
        conn.execute(
            "UPDATE server_settings SET red_alert_settings = ?, "
            "updated_at = datetime('now') WHERE guild_id = ?",
            (updated.model_dump_json(), str(guild_id)),
        )
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    return updated


def reset_alert_settings(guild_id: int, db_path: str | Path | None = None) -> AlertSettings:
    """Restore default preferences. Registered channels are untouched."""
    conn = get_db(db_path)
    try:
        _ensure_guild(conn, guild_id)
        conn.execute(
            "UPDATE server_settings SET red_alert_settings = NULL, "
            "updated_at = datetime('now') WHERE guild_id = ?",
            (str(guild_id),),
        )
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    return AlertSettings()


# ---------------------------------------------------------------------------
# Alert history
# ---------------------------------------------------------------------------

def record_alert(
    alert_key: str,
    alert_type: str,
    location: str,
    district: str,
    title: str | None = None,
    received_at: datetime | None = None,
    targets: int = 0,
    delivered: int = 0,
    db_path: str | Path | None = None,
) -> int:
    """Store one dispatched alert. Returns the row ID."""
    conn = get_db(db_path)
    if received_at is None:
        received_at = datetime.now(timezone.utc)
    try:
        cur = conn.execute(
            "INSERT INTO alert_history (alert_key, title, alert_type, location, "
            "district, received_at, targets, delivered) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (alert_key, title, alert_type, location, district,
             received_at.astimezone(timezone.utc).isoformat(timespec="seconds"),
             targets, delivered),
        )
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    return cur.lastrowid


def get_alert_history(
    days: int = 7,
    location: str | None = None,
    now: datetime | None = None,
    db_path: str | Path | None = None,
) -> list[dict]:
    """Alerts from the last ``days`` days, newest first.

    ``location`` matches as a substring of either the location or district.
    """
    conn = get_db(db_path)
    now = now or datetime.now(timezone.utc)
    cutoff = (now - timedelta(days=days)).astimezone(timezone.utc).isoformat(timespec="seconds")
    query = "SELECT * FROM alert_history WHERE received_at >= ?"
    params: list = [cutoff]
    if location and location != "all":
        query += " AND (instr(location, ?) > 0 OR instr(district, ?) > 0)"
        params += [location, location]
    query += " ORDER BY received_at DESC, id DESC"
    return [dict(r) for r in conn.execute(query, params).fetchall()]


def summarize_history(rows: list[dict]) -> dict:
    """Aggregate history rows into counts by type and district."""
    by_type: dict[str, int] = {}
    by_district: dict[str, int] = {}
    targets = delivered = 0
    for r in rows:
        by_type[r["alert_type"]] = by_type.get(r["alert_type"], 0) + 1
        by_district[r["district"]] = by_district.get(r["district"], 0) + 1
        targets += r.get("targets") or 0
        delivered += r.get("delivered") or 0
    return {
        "total": len(rows),
        "by_type": by_type,
        "by_district": dict(sorted(by_district.items(), key=lambda kv: -kv[1])),
        "targets": targets,
        "delivered": delivered,
    }
