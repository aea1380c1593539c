"""Tests for location enrichment."""

import pytest

from redalert.config import LIVE_MAP_URL, LOCATIONS, MULTIPLE_AREAS_NAME, UNRECOGNIZED_DISTRICT
from redalert.core.locations import format_shelter_time, resolve


@pytest.mark.parametrize("raw", [None, "", "   ", "\ufeff"])
def test_empty_input_is_multiple_areas(raw):
    info = resolve(raw)
    assert info.name == MULTIPLE_AREAS_NAME
    assert info.map_link == LIVE_MAP_URL


def test_exact_match():
    info = resolve("שדרות")
    assert info.matched_by == "exact"
    assert info.district == "עוטף עזה"
    assert info.shelter_seconds == 15
    assert info.zone == "gaza_envelope"


def test_exact_takes_precedence_over_partial():
    # "תל אביב - יפו" is a key itself; it must not resolve through a shorter overlap
    info = resolve("תל אביב - יפו")
    assert info.matched_by == "exact"
    assert info.district == "מחוז המרכז"


def test_partial_input_contains_known_name():
    info = resolve("שדרות, איבים, ניר עם")
    assert info.matched_by == "partial"
    assert info.district == "עוטף עזה"
    assert info.name == "שדרות, איבים, ניר עם"


def test_partial_known_name_contains_input():
    info = resolve("תל אביב")
    assert info.matched_by == "partial"
    assert info.district == "מחוז המרכז"


def test_area_pattern():
    info = resolve("גליל עליון")
    assert info.matched_by == "area"
    assert info.district == "מחוז הצפון"
    assert info.shelter_seconds is None


def test_fallback_has_search_link():
    info = resolve("מקום בדוי")
    assert info.matched_by == "fallback"
    assert info.district == UNRECOGNIZED_DISTRICT
    assert info.map_link.startswith("https://www.google.com/maps/search/")
    assert "query=" in info.map_link


def test_whitespace_is_normalized():
    assert resolve("  שדרות ").matched_by == "exact"


@pytest.mark.parametrize("raw", list(LOCATIONS) + ["x", "123", "a, b, c", "א"])
def test_resolve_is_total(raw):
    info = resolve(raw)
    assert info.name
    assert info.district
    assert info.map_link


@pytest.mark.parametrize("seconds,expected", [
    (0, "מיידי"),
    (15, "15 שניות"),
    (60, "דקה"),
    (90, "דקה וחצי"),
    (180, "3 דקות"),
    (None, "לא ידוע"),
])
def test_format_shelter_time(seconds, expected):
    assert format_shelter_time(seconds) == expected
