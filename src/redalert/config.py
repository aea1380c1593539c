"""
Red Alert Relay configuration.
Feed parameters, location enrichment table, and alert-settings choices in one place.
"""

from dataclasses import dataclass, field

OREF_ALERTS_URL = "https://www.oref.org.il/WarningMessages/alert/alerts.json"
LIVE_MAP_URL = "https://www.tzevaadom.co.il/"
MAP_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query="

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


@dataclass
class FeedConfig:
    url: str = OREF_ALERTS_URL

    # --- Polling ---
    poll_interval: float = 10.0         # seconds between ticks
    min_alert_interval: float = 30.0    # cooldown after a dispatched alert

    # --- Fetch ---
    fetch_attempts: int = 3
    retry_delay: float = 1.0            # sleep attempt * retry_delay between tries
    request_timeout: float = 15.0

    # --- Dedup / logging ---
    dedup_capacity: int = 100
    non_json_log_interval: float = 600.0  # at most one non-JSON notice per 10 min

    headers: dict[str, str] = field(default_factory=lambda: {
        "X-Requested-With": "XMLHttpRequest",
        "Referer": "https://www.oref.org.il/",
        "User-Agent": BROWSER_USER_AGENT,
    })


FEED = FeedConfig()


@dataclass
class LocationRecord:
    name: str
    district: str
    shelter_seconds: int              # 0 = enter the protected space immediately
    zone: str                         # "gaza_envelope", "south", "central", ...
    population: int | None = None
    map_link: str = LIVE_MAP_URL


LOCATIONS: dict[str, LocationRecord] = {
    # --- Gaza envelope ---
    "שדרות": LocationRecord("שדרות", "עוטף עזה", 15, "gaza_envelope", 35_000),
    "נתיבות": LocationRecord("נתיבות", "עוטף עזה", 30, "gaza_envelope", 50_000),
    "אופקים": LocationRecord("אופקים", "עוטף עזה", 45, "gaza_envelope", 36_000),
    "כפר עזה": LocationRecord("כפר עזה", "עוטף עזה", 0, "gaza_envelope", 900),
    "נחל עוז": LocationRecord("נחל עוז", "עוטף עזה", 0, "gaza_envelope", 500),
    # --- South ---
    "אשקלון": LocationRecord("אשקלון", "מחוז הדרום", 30, "south", 150_000),
    "אשדוד": LocationRecord("אשדוד", "מחוז הדרום", 45, "south", 226_000),
    "באר שבע": LocationRecord("באר שבע", "מחוז הדרום", 60, "south", 212_000),
    "אילת": LocationRecord("אילת", "מחוז הדרום", 90, "south", 52_000),
    "דימונה": LocationRecord("דימונה", "מחוז הדרום", 90, "south", 35_000),
    # --- Central ---
    "תל אביב - יפו": LocationRecord("תל אביב - יפו", "מחוז המרכז", 90, "central", 474_000),
    "רמת גן": LocationRecord("רמת גן", "מחוז המרכז", 90, "central", 170_000),
    "פתח תקווה": LocationRecord("פתח תקווה", "מחוז המרכז", 90, "central", 255_000),
    "ראשון לציון": LocationRecord("ראשון לציון", "מחוז המרכז", 90, "central", 260_000),
    "חולון": LocationRecord("חולון", "מחוז המרכז", 90, "central", 197_000),
    "רחובות": LocationRecord("רחובות", "מחוז המרכז", 90, "central", 150_000),
    "נתניה": LocationRecord("נתניה", "מחוז השרון", 90, "sharon", 230_000),
    # --- Jerusalem ---
    "ירושלים": LocationRecord("ירושלים", "מחוז ירושלים", 90, "jerusalem", 980_000),
    "בית שמש": LocationRecord("בית שמש", "מחוז ירושלים", 90, "jerusalem", 150_000),
    # --- North ---
    "חיפה": LocationRecord("חיפה", "מחוז הצפון", 60, "north", 285_000),
    "נהריה": LocationRecord("נהריה", "מחוז הצפון", 15, "north", 60_000),
    "קריית שמונה": LocationRecord("קריית שמונה", "מחוז הצפון", 0, "north", 22_000),
    "צפת": LocationRecord("צפת", "מחוז הצפון", 30, "north", 37_000),
    "טבריה": LocationRecord("טבריה", "מחוז הצפון", 60, "north", 49_000),
    "מטולה": LocationRecord("מטולה", "מחוז הצפון", 0, "north", 1_600),
    # --- Golan ---
    "קצרין": LocationRecord("קצרין", "רמת הגולן", 30, "golan", 8_000),
}

# Locality / region fragments -> district, checked after exact and partial
# matches against LOCATIONS fail.
AREA_PATTERNS: dict[str, tuple[str, str]] = {
    "עוטף עזה": ("עוטף עזה", "gaza_envelope"),
    "עוטף גזה": ("עוטף עזה", "gaza_envelope"),
    "עזה": ("עוטף עזה", "gaza_envelope"),
    "גזה": ("עוטף עזה", "gaza_envelope"),
    "תל אביב": ("מחוז המרכז", "central"),
    "שפלה": ("מחוז המרכז", "central"),
    "שרון": ("מחוז השרון", "sharon"),
    "ירושלים": ("מחוז ירושלים", "jerusalem"),
    "חיפה": ("מחוז הצפון", "north"),
    "קריות": ("מחוז הצפון", "north"),
    "גליל": ("מחוז הצפון", "north"),
    "עמקים": ("מחוז הצפון", "north"),
    "רמת הגולן": ("רמת הגולן", "golan"),
    "גולן": ("רמת הגולן", "golan"),
    "באר שבע": ("מחוז הדרום", "south"),
    "נגב": ("מחוז הדרום", "south"),
    "ערבה": ("מחוז הדרום", "south"),
    "אשדוד": ("מחוז הדרום", "south"),
    "אשקלון": ("מחוז הדרום", "south"),
}

MULTIPLE_AREAS_NAME = "אזורים מרובים"
NATIONWIDE_DISTRICT = "כל הארץ"
UNRECOGNIZED_DISTRICT = "אזור לא מזוהה"

MAJOR_CITY_POPULATION = 100_000

# Per-guild alert preference choices (slash command value -> label)
ALERT_TYPE_FILTERS: dict[str, str] = {
    "all": "All Alert Types",
    "red_only": "Red Alerts Only",
    "critical": "Missiles & Red Alerts",
    "no_tests": "Exclude System Tests",
}

LOCATION_FILTERS: dict[str, str] = {
    "all": "All Locations",
    "major_cities": "Major Cities Only",
    "gaza_priority": "Gaza Envelope Only",
    "central_priority": "Central District Only",
}
