"""
Configuration for the discovery grid.

This module controls:
- Default search queries and cell sizes for new grids.
- Structural limits (max subdivision depth, virtual tile cap).
- Saturation / freshness / orphaned-claim thresholds.
- Cascading delete batch size and the Prefect deployment that runs it.

Every knob can be overridden from the environment (or .env) without a deploy.
"""

from __future__ import annotations

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)) or str(default))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)) or str(default))
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name)
    if raw is None:
        return list(default)
    items = [q.strip() for q in raw.split(",")]
    return [q for q in items if q] or list(default)


# Queries run against every cell of a new grid (editable per grid afterwards).
DEFAULT_QUERIES: List[str] = _env_list(
    "DISCOVERY_DEFAULT_QUERIES",
    ["farms", "farmers market", "orchard", "farm stand", "pick your own"],
)

# Implicit default grid ("get-or-create") metadata.
DEFAULT_GRID_NAME = os.environ.get("DISCOVERY_DEFAULT_GRID_NAME", "Discovery")
DEFAULT_GRID_REGION = os.environ.get("DISCOVERY_DEFAULT_GRID_REGION", "Ontario")
DEFAULT_GRID_PROVINCE = os.environ.get("DISCOVERY_DEFAULT_GRID_PROVINCE", "Ontario")

# Default grid tiles are 10km; eagerly generated grids default to 20km.
DEFAULT_CELL_SIZE_KM: float = _env_float("DISCOVERY_DEFAULT_CELL_SIZE_KM", 10.0)
EAGER_CELL_SIZE_KM: float = _env_float("DISCOVERY_EAGER_CELL_SIZE_KM", 20.0)

# Virtual overlay is suppressed (empty list) above this many tiles.
MAX_VIRTUAL_CELLS: int = _env_int("DISCOVERY_MAX_VIRTUAL_CELLS", 500)

# Longitude step is computed at the viewport midpoint rounded to this band,
# so small vertical pans keep identical tile widths.
LAT_BAND_DEGREES: float = _env_float("DISCOVERY_LAT_BAND_DEGREES", 5.0)

MAX_DEPTH: int = _env_int("DISCOVERY_MAX_DEPTH", 4)

# Places text search stops at 60 results (3 pages x 20); a query at the cap
# probably has more results hidden behind it.
SATURATION_THRESHOLD: int = _env_int("DISCOVERY_SATURATION_THRESHOLD", 60)

# Freshness tiers (days since last search, inclusive upper bounds).
FRESH_DAYS: int = _env_int("DISCOVERY_FRESH_DAYS", 30)
AGING_DAYS: int = _env_int("DISCOVERY_AGING_DAYS", 90)

# Cells stuck in `searching` longer than this are considered orphaned.
SEARCHING_TIMEOUT_MINUTES: int = _env_int("DISCOVERY_SEARCHING_TIMEOUT_MINUTES", 30)

DELETE_BATCH_SIZE: int = _env_int("DISCOVERY_DELETE_BATCH_SIZE", 500)
DELETE_GRID_DEPLOYMENT = os.environ.get(
    "DISCOVERY_DELETE_GRID_DEPLOYMENT", "delete-discovery-grid/delete-discovery-grid"
)

# Search mechanisms offered on a cell (only enabled ones become actions).
DISCOVERY_MECHANISMS = [
    {"id": "google_places", "label": "Google Places", "enabled": True},
    {"id": "web_scraper", "label": "Web Scraping", "enabled": True},
]
