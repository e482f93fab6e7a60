"""Tests for freshness tiers, map styles and relative-time labels."""

from datetime import datetime, timedelta, timezone

import pytest

from leadgrid.discovery.freshness import (
    SATURATED_FRESHNESS, SEARCHED_FRESHNESS, UNSEARCHED_STYLE, Freshness,
    cell_freshness, cell_style, classify_freshness, format_relative_time,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _ago(days):
    return NOW - timedelta(days=days)


class TestClassifyFreshness:

    @pytest.mark.parametrize("days,expected", [
        (0, Freshness.FRESH),
        (30, Freshness.FRESH),
        (31, Freshness.AGING),
        (90, Freshness.AGING),
        (91, Freshness.STALE),
        (400, Freshness.STALE),
    ])
    def test_boundaries(self, days, expected):
        assert classify_freshness(_ago(days), NOW) is expected

    def test_naive_timestamps_are_utc(self):
        naive = _ago(45).replace(tzinfo=None)
        assert classify_freshness(naive, NOW) is Freshness.AGING


class TestCellFreshness:

    def test_searched_cell(self):
        cell = {"status": "searched", "last_searched_at": _ago(10)}
        assert cell_freshness(cell, NOW) is Freshness.FRESH

    def test_unsearched_cell_has_no_tier(self):
        assert cell_freshness({"status": "unsearched", "last_searched_at": None}, NOW) is None

    def test_searching_cell_has_no_tier(self):
        assert cell_freshness({"status": "searching", "last_searched_at": _ago(10)}, NOW) is None

    def test_unknown_status_has_no_tier(self):
        assert cell_freshness({"status": "bogus", "last_searched_at": _ago(10)}, NOW) is None


class TestCellStyle:

    def test_palettes(self):
        assert cell_style("unsearched") == UNSEARCHED_STYLE
        assert cell_style("searched", Freshness.STALE) == SEARCHED_FRESHNESS[Freshness.STALE]
        assert cell_style("saturated", Freshness.AGING) == SATURATED_FRESHNESS[Freshness.AGING]

    def test_completed_without_tier_renders_fresh(self):
        assert cell_style("saturated") == SATURATED_FRESHNESS[Freshness.FRESH]

    def test_style_is_a_copy(self):
        style = cell_style("unsearched")
        style["color"] = "#000000"
        assert UNSEARCHED_STYLE["color"] != "#000000"


class TestFormatRelativeTime:

    @pytest.mark.parametrize("days,label", [
        (0, "today"),
        (1, "yesterday"),
        (5, "5 days ago"),
        (21, "3 weeks ago"),
        (90, "3 months ago"),
    ])
    def test_labels(self, days, label):
        assert format_relative_time(_ago(days), NOW) == label
