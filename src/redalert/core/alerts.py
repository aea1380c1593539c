"""Alert records, feed payload normalization, and alert-type classification.

The Home Front Command feed is inconsistent about what it returns when
nothing is happening: an empty body, a BOM, ``[]``, ``{}``, a single alert
object, a bare array, or an object wrapping everything under ``data``. All
of these are classified into a ``FeedShape`` and flattened into a list of
``Alert`` records before any dedup or dispatch logic sees them.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class FeedDecodeError(ValueError):
    """Raised when a non-empty feed body is not valid JSON."""


class Alert(BaseModel):
    """One upstream alert record. Unknown feed fields are kept as extras."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    alert_date: str | None = Field(default=None, alias="alertDate")
    title: str | None = None
    data: str | list[str] | None = None
    received_at: datetime | None = None

    @field_validator("alert_date", "title", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str | None:
        if v is None:
            return None
        return str(v)

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_locations(cls, v: Any) -> str | list[str] | None:
        if v is None:
            return None
        if isinstance(v, (list, tuple)):
            return [str(x) for x in v if x is not None]
        return str(v)

    @property
    def location_text(self) -> str:
        """Human-readable location string; multi-valued data is comma-joined."""
        if isinstance(self.data, list):
            return ", ".join(x.strip() for x in self.data if x.strip())
        return (self.data or "").strip()

    @property
    def key(self) -> str:
        return alert_key(self)


def alert_key(alert: Alert) -> str:
    """Dedup identity: ``alertDate-title-data`` with constant placeholders.

    Not a feed-assigned ID. Distinct events sharing all three fields (or
    missing all three) collapse onto the same key.
    """
    if isinstance(alert.data, list):
        data = ",".join(alert.data)
    else:
        data = alert.data
    return f"{alert.alert_date or 'unknown-date'}-{alert.title or 'alert'}-{data or 'unknown'}"


# ---------------------------------------------------------------------------
# Payload normalization
# ---------------------------------------------------------------------------

class FeedShape(Enum):
    EMPTY = "empty"
    BARE_ARRAY = "bare_array"
    SINGLE_OBJECT = "single_object"
    WRAPPED = "wrapped"


def decode_feed_text(text: str | bytes | None) -> Any:
    """Decode a raw feed body. Blank bodies decode to None.

    Raises FeedDecodeError for non-empty bodies that are not JSON.
    """
    if text is None:
        return None
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    text = text.lstrip("\ufeff").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise FeedDecodeError(f"non-JSON feed body ({len(text)} chars)") from e


def classify_payload(payload: Any) -> FeedShape:
    """Identify which of the known response shapes a decoded payload has."""
    if not payload:
        return FeedShape.EMPTY
    if isinstance(payload, list):
        return FeedShape.BARE_ARRAY
    if isinstance(payload, dict):
        inner = payload.get("data")
        if isinstance(inner, dict) or (
            isinstance(inner, list) and inner and all(isinstance(x, dict) for x in inner)
        ):
            return FeedShape.WRAPPED
        if "data" in payload and len(payload) == 1 and not inner:
            return FeedShape.EMPTY  # {"data": []} / {"data": null}
        return FeedShape.SINGLE_OBJECT
    return FeedShape.EMPTY


def normalize_payload(payload: Any, received_at: datetime | None = None) -> list[Alert]:
    """Flatten any recognized payload shape into zero or more Alert records."""
    shape = classify_payload(payload)
    if shape is FeedShape.EMPTY:
        return []
    if shape is FeedShape.BARE_ARRAY:
        items = payload
    elif shape is FeedShape.WRAPPED:
        inner = payload["data"]
        items = inner if isinstance(inner, list) else [inner]
    else:
        items = [payload]

    alerts = []
    for item in items:
        if isinstance(item, dict) and not item:
            continue
        if not isinstance(item, dict):
            logger.debug(f"Skipping non-object feed entry: {item!r}")
            continue
        try:
            alert = Alert.model_validate(item)
        except ValidationError as e:
            logger.warning(f"Skipping malformed feed entry: {e}")
            continue
        if alert.received_at is None:
            alert.received_at = received_at
        alerts.append(alert)
    return alerts


def parse_feed(text: str | bytes | None, received_at: datetime | None = None) -> list[Alert]:
    """Decode + normalize a raw feed body in one step."""
    return normalize_payload(decode_feed_text(text), received_at=received_at)


# ---------------------------------------------------------------------------
# Alert type classification
# ---------------------------------------------------------------------------

RED = 0xFF0000
GREEN = 0x00FF00
YELLOW = 0xFFFF00
ORANGE = 0xFF8C00


@dataclass(frozen=True)
class AlertType:
    key: str
    label: str
    emoji: str
    description: str
    color: int


RED_ALERT = AlertType("red_alert", "צבע אדום", "\U0001f6a8", "התראה פעילה", RED)
MISSILE = AlertType("missile", "התראה לפני טילים", "\U0001f680", "זוהו טילים באוויר", RED)
ALL_CLEAR = AlertType(
    "all_clear", "סיום מטח", "✅", "המטח הסתיים - ניתן לצאת מהמרחב המוגן", GREEN,
)
SYSTEM_TEST = AlertType("test", "בדיקת מערכת", "\U0001f527", "בדיקת מערכת התראות", YELLOW)
GENERAL = AlertType("general", "התראה כללית", "⚠️", "התראה כללית", ORANGE)

ALERT_TYPES: dict[str, AlertType] = {
    t.key: t for t in (RED_ALERT, MISSILE, ALL_CLEAR, SYSTEM_TEST, GENERAL)
}

_TITLE_KEYWORDS: list[tuple[tuple[str, ...], AlertType]] = [
    (("צבע אדום", "ירי רקטות", "red alert", "rocket"), RED_ALERT),
    (("התראה לפני טילים", "missile"), MISSILE),
    (("סיום מטח", "האירוע הסתיים", "all clear"), ALL_CLEAR),
    (("בדיקה", "בדיקת", "test"), SYSTEM_TEST),
]


def classify_alert(title: str | None) -> AlertType:
    """Map a feed title to its alert type. A missing title is a red alert."""
    if not title or not title.strip():
        return RED_ALERT
    lowered = title.lower()
    for keywords, alert_type in _TITLE_KEYWORDS:
        if any(k in lowered for k in keywords):
            return alert_type
    return GENERAL
