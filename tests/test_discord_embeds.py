"""Tests for Discord embed builders in notify.py."""

from datetime import datetime, timezone

from redalert.bot.discord_db import AlertSettings
from redalert.bot.notify import (
    _alert_content,
    _alert_embed,
    _channel_list_embed,
    _error_embed,
    _history_embed,
    _settings_embed,
    _setup_embed,
    alert_time,
    render_alert,
)
from redalert.core.alerts import ALL_CLEAR, RED_ALERT, SYSTEM_TEST, Alert
from redalert.core.locations import resolve

SDEROT = Alert(alert_date="2024-01-01 12:00:00", title="צבע אדום", data="שדרות")


def _field_names(embed):
    return [f["name"] for f in embed["fields"]]


def test_alert_embed_structure():
    embed = _alert_embed(SDEROT, RED_ALERT, resolve("שדרות"))

    assert "צבע אדום" in embed["title"]
    assert embed["color"] == 0xFF0000
    assert embed["fields"][0]["value"] == "12:00:00"
    assert "שדרות" in embed["fields"][1]["value"]
    assert "עוטף עזה" in embed["fields"][1]["value"]
    names = _field_names(embed)
    assert any("מרחב מוגן" in n for n in names)
    assert any("מפה" in n for n in names)
    assert any("אוכלוסייה" in n for n in names)
    assert embed["footer"]["text"].startswith("מערכת התראות פיקוד העורף")


def test_alert_embed_respects_settings():
    settings = AlertSettings(include_map=False, detailed_info=False)
    names = _field_names(_alert_embed(SDEROT, RED_ALERT, resolve("שדרות"), settings))
    assert not any("מפה" in n for n in names)
    assert not any("מרחב מוגן" in n for n in names)


def test_fallback_location_links_to_search():
    embed = _alert_embed(SDEROT, RED_ALERT, resolve("מקום בדוי"))
    map_field = next(f for f in embed["fields"] if "מפה" in f["name"])
    assert "google.com/maps/search" in map_field["value"]


def test_all_clear_embed():
    embed = _alert_embed(SDEROT, ALL_CLEAR, resolve("שדרות"))
    assert embed["color"] == 0x00FF00
    assert not any("מרחב מוגן" in n for n in _field_names(embed))
    assert "לצאת" in embed["fields"][-1]["value"]


def test_test_mode_embed():
    embed = _alert_embed(SDEROT, SYSTEM_TEST, resolve("שדרות"), test=True)
    assert "בדיקה" in embed["footer"]["text"]
    assert "הדמיה" in embed["description"]


def test_alert_content():
    assert _alert_content(RED_ALERT, True) == "@everyone התראה!"
    assert _alert_content(RED_ALERT, False) is None
    assert _alert_content(ALL_CLEAR, True) is None
    assert _alert_content(SYSTEM_TEST, True) is None
    assert _alert_content(RED_ALERT, True, test=True) == "@everyone התראת בדיקה!"


def test_render_alert():
    payload = render_alert(SDEROT, RED_ALERT, resolve("שדרות"))
    assert set(payload) == {"content", "embed"}
    assert payload["content"] == "@everyone התראה!"


def test_alert_time_uses_israel_time():
    ts = alert_time(SDEROT)
    assert ts.hour == 12
    assert ts.utcoffset().total_seconds() == 2 * 3600  # IST in January


def test_alert_time_falls_back_to_receipt():
    received = datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)
    ts = alert_time(Alert(alert_date="garbage", received_at=received))
    assert ts.hour == 12  # IDT is UTC+3


def test_setup_embed():
    embed = _setup_embed(123, "My Server", 2)
    assert embed["fields"][0]["value"] == "<#123>"
    assert embed["fields"][1]["value"] == "My Server"
    assert "2 channels" in embed["fields"][2]["value"]


def test_channel_list_embed_empty():
    embed = _channel_list_embed([])
    assert "No channels" in embed["description"]
    assert "/setup-redalert" in embed["fields"][0]["value"]


def test_channel_list_embed():
    embed = _channel_list_embed([(1, "alerts"), (2, "news")], removed=1)
    assert "<#1> (alerts)" in embed["fields"][0]["value"]
    assert embed["fields"][1]["value"] == "2"
    assert embed["fields"][2]["value"] == "1"


def test_history_embed():
    rows = [{
        "alert_type": "red_alert", "location": "שדרות", "district": "עוטף עזה",
        "received_at": "2024-06-01T10:00:00+00:00",
    }]
    summary = {"total": 1, "by_type": {"red_alert": 1}, "by_district": {"עוטף עזה": 1},
               "targets": 3, "delivered": 2}
    embed = _history_embed(7, "all", rows, summary)
    assert embed["color"] == 0xFF0000
    assert "2/3" in embed["fields"][0]["value"]
    assert any("Most Active" in n for n in _field_names(embed))


def test_history_embed_quiet_period():
    summary = {"total": 0, "by_type": {}, "by_district": {}, "targets": 0, "delivered": 0}
    embed = _history_embed(1, "חיפה", [], summary)
    assert embed["color"] == 0x00FF00
    assert "חיפה" in embed["description"]
    assert embed["fields"][1]["value"] == "No alerts in this period"


def test_settings_embed():
    embed = _settings_embed(AlertSettings(mention_everyone=False), "Srv", [10, 20])
    assert "Disabled" in embed["fields"][0]["value"]
    assert "2 configured" in embed["fields"][1]["value"]
    assert "<#10>, <#20>" == embed["fields"][2]["value"]


def test_error_embed():
    embed = _error_embed("Setup failed", "x" * 5000)
    assert embed["title"] == "❌ Setup failed"
    assert embed["color"] == 0xFF0000
    assert len(embed["description"]) == 4096
