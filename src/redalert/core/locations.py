"""Location enrichment: raw feed location text to district, shelter time and map link.

Matching order:
    1. exact name in LOCATIONS
    2. partial: input contains a known name, or a known name contains the input
    3. AREA_PATTERNS fragment containment (locality/region -> district)
    4. generic "unrecognized area" with a map search link for the raw text

``resolve`` never raises and never returns None.
"""

import logging
from dataclasses import dataclass
from urllib.parse import quote_plus

from ..config import (
    AREA_PATTERNS,
    LIVE_MAP_URL,
    LOCATIONS,
    MAP_SEARCH_URL,
    MULTIPLE_AREAS_NAME,
    NATIONWIDE_DISTRICT,
    UNRECOGNIZED_DISTRICT,
    LocationRecord,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationInfo:
    name: str
    district: str
    map_link: str
    zone: str = "unknown"
    shelter_seconds: int | None = None
    population: int | None = None
    matched_by: str = "fallback"     # exact | partial | area | fallback


def _clean(raw: str | None) -> str:
    if not raw:
        return ""
    return " ".join(str(raw).replace("\ufeff", "").split())


def _from_record(name: str, record: LocationRecord, matched_by: str) -> LocationInfo:
    return LocationInfo(
        name=name,
        district=record.district,
        map_link=record.map_link,
        zone=record.zone,
        shelter_seconds=record.shelter_seconds,
        population=record.population,
        matched_by=matched_by,
    )


def _partial_match(text: str) -> LocationRecord | None:
    # Prefer the longest key so "תל אביב - יפו" wins over shorter overlaps
    best: LocationRecord | None = None
    for key in sorted(LOCATIONS, key=len, reverse=True):
        if key in text or text in key:
            best = LOCATIONS[key]
            break
    return best


def _area_match(text: str) -> tuple[str, str] | None:
    for fragment in sorted(AREA_PATTERNS, key=len, reverse=True):
        if fragment in text:
            return AREA_PATTERNS[fragment]
    return None


def resolve(raw: str | None) -> LocationInfo:
    """Resolve a raw feed location string to displayable location info."""
    text = _clean(raw)
    if not text:
        return LocationInfo(
            name=MULTIPLE_AREAS_NAME,
            district=NATIONWIDE_DISTRICT,
            map_link=LIVE_MAP_URL,
            zone="nationwide",
        )

    record = LOCATIONS.get(text)
    if record is not None:
        return _from_record(text, record, "exact")

    record = _partial_match(text)
    if record is not None:
        return _from_record(text, record, "partial")

    area = _area_match(text)
    if area is not None:
        district, zone = area
        return LocationInfo(
            name=text, district=district, map_link=LIVE_MAP_URL,
            zone=zone, matched_by="area",
        )

    logger.debug(f"Unrecognized alert location: {text}")
    return LocationInfo(
        name=text,
        district=UNRECOGNIZED_DISTRICT,
        map_link=MAP_SEARCH_URL + quote_plus(text),
    )


def format_shelter_time(seconds: int | None) -> str:
    """Hebrew display string for a shelter (migun) time."""
    if seconds is None:
        return "לא ידוע"
    if seconds <= 0:
        return "מיידי"
    if seconds < 60:
        return f"{seconds} שניות"
    if seconds == 60:
        return "דקה"
    if seconds == 90:
        return "דקה וחצי"
    minutes, rem = divmod(seconds, 60)
    return f"{minutes} דקות" if rem == 0 else f"{seconds} שניות"
