"""
Virtual tiles for any part of the map with no persisted cell yet.

Pure and deterministic: safe to call on every render / pan. Tile corners
are derived from integer tile indices on a grid anchored at (0, 0), so the
same absolute coordinate always lands in the same tile with the same key,
whatever viewport produced it.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Set, Tuple

from . import config
from .geo import cell_key, km_to_lat_degrees, km_to_lng_degrees, tile_index
from .models import BoundingBox, VirtualCell

logger = logging.getLogger(__name__)

# Absorbs float noise like 43.200000000000003 / step landing one tile too far.
_EDGE_EPS = 1e-9


def band_latitude(mid_lat: float, band: Optional[float] = None) -> float:
    """Round a latitude to the centre of its longitude-step band."""
    band = band or config.LAT_BAND_DEGREES
    lat = round(mid_lat / band) * band
    # cos() -> 0 at the poles; keep the step finite
    return max(-85.0, min(85.0, lat))


def grid_steps(viewport: BoundingBox, cell_size_km: float) -> Tuple[float, float]:
    """(lat_step, lng_step) in degrees for tiles of `cell_size_km` around the viewport."""
    mid_lat, _ = viewport.midpoint
    return km_to_lat_degrees(cell_size_km), km_to_lng_degrees(cell_size_km, band_latitude(mid_lat))


def compute_virtual_grid(
    viewport: BoundingBox,
    cell_size_km: float,
    max_cells: Optional[int] = None,
) -> List[VirtualCell]:
    """
    Tiles covering `viewport`, row-major from the south-west.

    Returns [] when covering the viewport would take more than `max_cells`
    tiles: the map is too zoomed out for an overlay and the caller should
    skip rendering it rather than draw thousands of tiles.
    """
    if max_cells is None:
        max_cells = config.MAX_VIRTUAL_CELLS
    viewport.validate()
    if cell_size_km <= 0:
        raise ValueError(f"cell_size_km must be positive, got: {cell_size_km}")

    lat_step, lng_step = grid_steps(viewport, cell_size_km)

    row0 = tile_index(viewport.sw_lat, lat_step)
    col0 = tile_index(viewport.sw_lng, lng_step)
    rows = max(1, math.ceil(viewport.ne_lat / lat_step - _EDGE_EPS) - row0)
    cols = max(1, math.ceil(viewport.ne_lng / lng_step - _EDGE_EPS) - col0)

    if rows * cols > max_cells:
        logger.debug("virtual grid suppressed: %sx%s tiles > max_cells=%s", rows, cols, max_cells)
        return []

    cells: List[VirtualCell] = []
    for r in range(rows):
        sw_lat = (row0 + r) * lat_step
        ne_lat = (row0 + r + 1) * lat_step
        for c in range(cols):
            sw_lng = (col0 + c) * lng_step
            ne_lng = (col0 + c + 1) * lng_step
            cells.append(VirtualCell(
                key=cell_key(sw_lat, sw_lng),
                sw_lat=sw_lat,
                sw_lng=sw_lng,
                ne_lat=ne_lat,
                ne_lng=ne_lng,
            ))
    return cells


def exclude_activated(cells: Iterable[VirtualCell], activated_keys: Iterable[str]) -> List[VirtualCell]:
    """Drop tiles already represented by a persisted cell (same bounds_key)."""
    taken: Set[str] = {k for k in activated_keys if k}
    return [c for c in cells if c.key not in taken]
