"""Discord embed builders for alert notifications and admin command replies.

All builders return plain embed dicts (``discord.Embed.from_dict`` turns
them into embeds at send time) so they can be tested without a client.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from ..config import ALERT_TYPE_FILTERS, LOCATION_FILTERS
from ..core.alerts import ALERT_TYPES, ALL_CLEAR, SYSTEM_TEST, Alert, AlertType
from ..core.locations import LocationInfo, format_shelter_time
from .discord_db import AlertSettings

ISRAEL_TZ = ZoneInfo("Asia/Jerusalem")

# Colors
GREEN = 0x00FF00
RED = 0xFF0000
BLUE = 0x0099FF
GRAY = 0x95A5A6

FOOTER = "מערכת התראות פיקוד העורף"
SHELTER_INSTRUCTIONS = "להיכנס למרחב המוגן מיד ולהישאר בו 10 דקות"
ALL_CLEAR_INSTRUCTIONS = "ניתן לצאת מהמרחב המוגן בזהירות"


def alert_time(alert: Alert) -> datetime:
    """When the alert was issued, in Israel time.

    Feed timestamps are naive local time; missing or unparseable ones fall
    back to the receipt time, then to now.
    """
    if alert.alert_date:
        try:
            ts = datetime.fromisoformat(alert.alert_date.strip().replace("Z", "+00:00"))
        except ValueError:
            ts = None
        if ts is not None:
            if ts.tzinfo is None:
                ts = ts.replace(tzinfo=ISRAEL_TZ)
            return ts.astimezone(ISRAEL_TZ)
    if alert.received_at is not None:
        received = alert.received_at
        if received.tzinfo is None:
            received = received.replace(tzinfo=timezone.utc)
        return received.astimezone(ISRAEL_TZ)
    return datetime.now(ISRAEL_TZ)


# ---------------------------------------------------------------------------
# Alert notifications
# ---------------------------------------------------------------------------

def _alert_embed(
    alert: Alert,
    alert_type: AlertType,
    location: LocationInfo,
    settings: AlertSettings | None = None,
    test: bool = False,
) -> dict:
    """Build the embed broadcast for one alert."""
    settings = settings or AlertSettings()
    issued = alert_time(alert)
    time_str = issued.strftime("%H:%M:%S")

    description = f"**{alert_type.description}**"
    if test:
        description += "\n\n*זוהי הדמיה של מערכת ההתראות*"

    fields = [
        {"name": "\U0001f552 זמן התראה", "value": time_str, "inline": True},
        {"name": "\U0001f4cd מיקום", "value": f"{location.name}\n*{location.district}*",
         "inline": True},
    ]
    if settings.detailed_info and alert_type is not ALL_CLEAR:
        fields.append({
            "name": "⏱️ זמן כניסה למרחב מוגן",
            "value": format_shelter_time(location.shelter_seconds),
            "inline": True,
        })
        if location.population:
            fields.append({
                "name": "\U0001f465 אוכלוסייה",
                "value": f"{location.population:,}",
                "inline": True,
            })
    if settings.include_map:
        fields.append({
            "name": "\U0001f5fa️ מפה",
            "value": f"[צפייה במפה]({location.map_link})",
            "inline": True,
        })
    fields.append({
        "name": "⚠️ הנחיות",
        "value": ALL_CLEAR_INSTRUCTIONS if alert_type is ALL_CLEAR else SHELTER_INSTRUCTIONS,
        "inline": False,
    })
    if test:
        fields.append({
            "name": "\U0001f527 מצב בדיקה",
            "value": "זוהי בדיקת מערכת - לא התראה אמיתית!",
            "inline": False,
        })

    footer = f"{FOOTER} (בדיקה)" if test else FOOTER
    return {
        "title": f"{alert_type.emoji} {alert_type.label} {alert_type.emoji}",
        "description": description,
        "color": alert_type.color,
        "fields": fields[:25],
        "timestamp": issued.isoformat(),
        "footer": {"text": f"{footer} • {issued.strftime('%H:%M')}"},
    }


def _alert_content(alert_type: AlertType, mention_everyone: bool, test: bool = False) -> str | None:
    """Message text sent alongside the embed (the @everyone ping)."""
    if not mention_everyone or alert_type is SYSTEM_TEST:
        return None
    if test:
        return "@everyone התראת בדיקה!"
    if alert_type is ALL_CLEAR:
        return None
    return "@everyone התראה!"


def render_alert(
    alert: Alert,
    alert_type: AlertType,
    location: LocationInfo,
    settings: AlertSettings | None = None,
    test: bool = False,
) -> dict:
    """Complete send payload: {"content": str | None, "embed": dict}."""
    settings = settings or AlertSettings()
    return {
        "content": _alert_content(alert_type, settings.mention_everyone, test=test),
        "embed": _alert_embed(alert, alert_type, location, settings, test=test),
    }


# ---------------------------------------------------------------------------
# Admin command replies
# ---------------------------------------------------------------------------

def _setup_embed(channel_id: int, guild_name: str, channel_count: int) -> dict:
    """Confirmation for /setup-redalert."""
    plural = "s" if channel_count != 1 else ""
    return {
        "title": "✅ Red Alert Notifications Set Up!",
        "description": "This channel will now receive Red Alert notifications.",
        "color": GREEN,
        "fields": [
            {"name": "Channel", "value": f"<#{channel_id}>", "inline": True},
            {"name": "Server", "value": guild_name or "Unknown Server", "inline": True},
            {"name": "Total Channels",
             "value": f"{channel_count} channel{plural} in this server", "inline": False},
        ],
    }


def _setup_test_embed() -> dict:
    """Welcome message posted into a newly registered channel."""
    return {
        "title": "\U0001f6a8 RED ALERT - Test Message \U0001f6a8",
        "description": "**This is a test message**",
        "color": RED,
        "fields": [
            {"name": "Status",
             "value": "This channel is now set up to receive Red Alert notifications",
             "inline": False},
            {"name": "How it works",
             "value": "When a Red Alert is issued in Israel, this channel will receive "
                      "an automatic notification",
             "inline": False},
        ],
    }


def _removed_embed(channel_id: int) -> dict:
    return {
        "title": "\u2705 Red Alert Notifications Removed",
        "description": f"<#{channel_id}> will no longer receive Red Alert notifications.",
        "color": GREEN,
    }


def _channel_list_embed(active: list[tuple[int, str]], removed: int = 0) -> dict:
    """Channel overview for /list-redalert. ``active`` is [(channel_id, name)]."""
    if not active:
        return {
            "title": "\U0001f4cb Red Alert Notification Channels",
            "description": "No channels are currently configured for Red Alert notifications.",
            "color": BLUE,
            "fields": [{
                "name": "Get Started",
                "value": "Use `/setup-redalert` in any channel to start receiving "
                         "Red Alert notifications.",
                "inline": False,
            }],
        }
    listing = "\n".join(f"<#{cid}> ({name})" for cid, name in active)
    if len(listing) > 1024:
        listing = listing[:1021] + "..."
    return {
        "title": "\U0001f4cb Red Alert Notification Channels",
        "description": "The following channels are configured to receive Red Alert notifications:",
        "color": BLUE,
        "fields": [
            {"name": "✅ Active Channels", "value": listing, "inline": False},
            {"name": "Valid Channels", "value": str(len(active)), "inline": True},
            {"name": "Removed (invalid)", "value": str(removed), "inline": True},
            {"name": "Management Commands",
             "value": "• `/setup-redalert` - Add a channel\n• `/remove-redalert` - Remove a channel",
             "inline": False},
        ],
    }


def _test_sent_embed(alert_type: AlertType, location: LocationInfo) -> dict:
    """Confirmation for /test-redalert."""
    return {
        "title": "✅ Test Alert Sent!",
        "description": (
            f"Sent a test **{alert_type.label}** alert for "
            f"**{location.name}** ({location.district})"
        ),
        "color": GREEN,
    }


def _type_label(key: str) -> str:
    return ALERT_TYPES[key].label if key in ALERT_TYPES else key


def _history_embed(days: int, location: str, rows: list[dict], summary: dict) -> dict:
    """Summary for /redalert-history."""
    scope = (
        f"Showing alerts from all locations in the past {days} days"
        if location == "all"
        else f"Showing alerts for **{location}** in the past {days} days"
    )
    fields = [{
        "name": "\U0001f4c8 Summary",
        "value": (
            f"**Total Alerts:** {summary['total']}\n"
            f"**Deliveries:** {summary['delivered']}/{summary['targets']}\n"
            f"**Period:** {days} day{'s' if days != 1 else ''}"
        ),
        "inline": True,
    }, {
        "name": "\U0001f3af Alert Breakdown",
        "value": "\n".join(
            f"**{_type_label(t)}:** {n}" for t, n in summary["by_type"].items()
        ) or "No alerts in this period",
        "inline": True,
    }]

    if rows:
        lines = []
        for i, r in enumerate(rows[:10], 1):
            ts = datetime.fromisoformat(r["received_at"]).astimezone(ISRAEL_TZ)
            lines.append(
                f"**{i}.** {_type_label(r['alert_type'])} • \U0001f4cd {r['location']} ({r['district']}) "
                f"• \U0001f552 {ts.strftime('%d %b %H:%M')}"
            )
        recent = "\n".join(lines)
        fields.append({
            "name": f"\U0001f552 Recent Alerts{' (Last 10)' if len(rows) > 10 else ''}",
            "value": recent if len(recent) <= 1024 else recent[:1021] + "...",
            "inline": False,
        })

    if location == "all" and summary["by_district"]:
        top = list(summary["by_district"].items())[:5]
        fields.append({
            "name": "\U0001f5fa️ Most Active Areas",
            "value": "\n".join(
                f"• **{d}:** {n} alert{'s' if n != 1 else ''}" for d, n in top
            ),
            "inline": True,
        })

    return {
        "title": f"\U0001f4ca Red Alert History - Last {days} Days",
        "description": scope,
        "color": RED if summary["total"] else GREEN,
        "fields": fields,
    }


def _settings_embed(settings: AlertSettings, guild_name: str, channel_ids: list[int]) -> dict:
    """Current preferences for /redalert-settings view."""
    def _flag(v: bool) -> str:
        return "✅ Enabled" if v else "❌ Disabled"

    fields = [{
        "name": "\U0001f4e2 Notification Settings",
        "value": (
            f"**Mention Everyone:** {_flag(settings.mention_everyone)}\n"
            f"**Include Maps:** {_flag(settings.include_map)}\n"
            f"**Detailed Info:** {_flag(settings.detailed_info)}"
        ),
        "inline": True,
    }, {
        "name": "\U0001f3af Filter Settings",
        "value": (
            f"**Alert Types:** {ALERT_TYPE_FILTERS.get(settings.alert_types, settings.alert_types)}\n"
            f"**Location Filter:** "
            f"{LOCATION_FILTERS.get(settings.location_filter, settings.location_filter)}\n"
            f"**Active Channels:** {len(channel_ids)} configured"
        ),
        "inline": True,
    }]
    if channel_ids:
        listing = ", ".join(f"<#{cid}>" for cid in channel_ids)
        fields.append({
            "name": "\U0001f4fa Alert Channels",
            "value": listing if len(listing) <= 1000 else listing[:997] + "...",
            "inline": False,
        })
    return {
        "title": "⚙️ Red Alert Settings",
        "description": f"Current settings for **{guild_name or 'this server'}**",
        "color": BLUE,
        "fields": fields,
    }


def _settings_updated_embed(title: str, changes: list[str]) -> dict:
    return {
        "title": f"✅ {title}",
        "color": GREEN,
        "fields": [{"name": "\U0001f4dd Changes Made", "value": "\n".join(changes), "inline": False}],
    }


def _error_embed(title: str, details: str) -> dict:
    """Build an embed for a failed admin operation."""
    return {
        "title": f"❌ {title}",
        "color": RED,
        "description": details[:4096],  # Discord limit
    }
