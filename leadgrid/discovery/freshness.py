"""
Time-decay freshness of searched cells, and the map palette built on it.

    days since last search <= 30  -> fresh
    days since last search <= 90  -> aging
    anything older                -> stale

Only searched/saturated cells with a last_searched_at have a tier.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from . import config
from .errors import InvalidTransitionError
from .states import COMPLETED, CellStatus
from .util import as_utc, utcnow

_SECONDS_PER_DAY = 86400.0


class Freshness(str, Enum):
    FRESH = "fresh"
    AGING = "aging"
    STALE = "stale"


def days_since(last_searched_at: datetime, now: Optional[datetime] = None) -> float:
    now = as_utc(now) or utcnow()
    return (now - as_utc(last_searched_at)).total_seconds() / _SECONDS_PER_DAY


def classify_freshness(last_searched_at: datetime, now: Optional[datetime] = None) -> Freshness:
    days = days_since(last_searched_at, now)
    if days <= config.FRESH_DAYS:
        return Freshness.FRESH
    if days <= config.AGING_DAYS:
        return Freshness.AGING
    return Freshness.STALE


def cell_freshness(cell: Mapping[str, Any], now: Optional[datetime] = None) -> Optional[Freshness]:
    """Tier for a cell dict (as returned by cells.list_cells), or None if it has none."""
    try:
        status = CellStatus.parse(cell.get("status"))
    except InvalidTransitionError:
        return None
    last = cell.get("last_searched_at")
    if status not in COMPLETED or last is None:
        return None
    return classify_freshness(last, now)


# fill colours per status; searched/saturated fade with freshness
UNSEARCHED_STYLE = {"color": "#9ca3af", "fillOpacity": 0.15}
SEARCHING_STYLE = {"color": "#3b82f6", "fillOpacity": 0.35}
VIRTUAL_CELL_STYLE = {"color": "#d1d5db", "fillOpacity": 0.05}

SEARCHED_FRESHNESS: Dict[Freshness, Dict[str, Any]] = {
    Freshness.FRESH: {"color": "#4ade80", "fillOpacity": 0.35},
    Freshness.AGING: {"color": "#a3e635", "fillOpacity": 0.25},
    Freshness.STALE: {"color": "#ca8a04", "fillOpacity": 0.15},
}

SATURATED_FRESHNESS: Dict[Freshness, Dict[str, Any]] = {
    Freshness.FRESH: {"color": "#f97316", "fillOpacity": 0.35},
    Freshness.AGING: {"color": "#d97706", "fillOpacity": 0.25},
    Freshness.STALE: {"color": "#92400e", "fillOpacity": 0.15},
}


def cell_style(status: Any, freshness: Optional[Freshness] = None) -> Dict[str, Any]:
    """Map style for a persisted cell. Completed cells without a tier render as fresh."""
    status = CellStatus.parse(status)
    if status == CellStatus.UNSEARCHED:
        return dict(UNSEARCHED_STYLE)
    if status == CellStatus.SEARCHING:
        return dict(SEARCHING_STYLE)
    palette = SATURATED_FRESHNESS if status == CellStatus.SATURATED else SEARCHED_FRESHNESS
    return dict(palette[freshness or Freshness.FRESH])


def format_relative_time(ts: datetime, now: Optional[datetime] = None) -> str:
    days = int(days_since(ts, now))
    if days <= 0:
        return "today"
    if days == 1:
        return "yesterday"
    if days < 14:
        return f"{days} days ago"
    if days < 60:
        return f"{days // 7} weeks ago"
    return f"{days // 30} months ago"
