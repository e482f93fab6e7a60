"""
Discovery grid records.

Two ways a grid comes into existence:
- generate_grid(): explicit region + bounds, eagerly tiled into depth-0 leaves.
- get_or_create_default_grid(): the single implicit grid the map uses before
  anyone defines one. No bounds; its cells are activated lazily from virtual
  tiles.

Grids are only ever deleted through leadgrid.discovery.deletion.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from leadgrid.db import get_session
from leadgrid.schema import DiscoveryCell, DiscoveryGrid

from . import config
from .errors import GridNotFoundError
from .geo import cell_key, km_to_lat_degrees, km_to_lng_degrees
from .models import BoundingBox
from .states import CellStatus
from .util import to_iso, log_event, utcnow

logger = logging.getLogger(__name__)

_EDGE_EPS = 1e-9


def _clean_queries(queries: Optional[Sequence[str]]) -> List[str]:
    if queries is None:
        return list(config.DEFAULT_QUERIES)
    out: List[str] = []
    for q in queries:
        q = (q or "").strip()
        if q and q not in out:
            out.append(q)
    return out


def load_grid(session: Session, grid_id: int) -> DiscoveryGrid:
    grid = session.get(DiscoveryGrid, grid_id)
    if grid is None:
        raise GridNotFoundError(f"Grid not found: {grid_id}")
    return grid


def grid_bounds(grid: DiscoveryGrid) -> Optional[BoundingBox]:
    return BoundingBox.from_row(grid) if grid.has_bounds else None


def tile_bounds(bounds: BoundingBox, cell_size_km: float) -> List[BoundingBox]:
    """
    Eager depth-0 tiling of `bounds`, anchored at its south-west corner.

    The last row/column is clamped to the grid edge, so the union of the
    tiles is exactly `bounds` with no overlap.
    """
    if cell_size_km <= 0:
        raise ValueError(f"cell_size_km must be positive, got: {cell_size_km}")

    mid_lat, _ = bounds.midpoint
    lat_step = km_to_lat_degrees(cell_size_km)
    lng_step = km_to_lng_degrees(cell_size_km, mid_lat)

    rows = max(1, math.ceil((bounds.ne_lat - bounds.sw_lat) / lat_step - _EDGE_EPS))
    cols = max(1, math.ceil((bounds.ne_lng - bounds.sw_lng) / lng_step - _EDGE_EPS))

    tiles: List[BoundingBox] = []
    for r in range(rows):
        sw_lat = bounds.sw_lat + r * lat_step
        ne_lat = bounds.ne_lat if r == rows - 1 else min(sw_lat + lat_step, bounds.ne_lat)
        for c in range(cols):
            sw_lng = bounds.sw_lng + c * lng_step
            ne_lng = bounds.ne_lng if c == cols - 1 else min(sw_lng + lng_step, bounds.ne_lng)
            tiles.append(BoundingBox(sw_lat, sw_lng, ne_lat, ne_lng))
    return tiles


def generate_grid(
    name: str,
    region: str,
    province: str,
    bounds: BoundingBox,
    queries: Optional[Sequence[str]] = None,
    cell_size_km: Optional[float] = None,
) -> Dict[str, Any]:
    """Create a bounded grid and its initial depth-0 leaf cells in one transaction."""
    bounds.validate()
    cell_size_km = cell_size_km if cell_size_km is not None else config.EAGER_CELL_SIZE_KM
    tiles = tile_bounds(bounds, cell_size_km)

    with get_session() as s:
        grid = DiscoveryGrid(
            name=(name or "").strip() or config.DEFAULT_GRID_NAME,
            region=region or "",
            province=province or "",
            queries=_clean_queries(queries),
            sw_lat=bounds.sw_lat,
            sw_lng=bounds.sw_lng,
            ne_lat=bounds.ne_lat,
            ne_lng=bounds.ne_lng,
            cell_size_km=cell_size_km,
            total_leads_found=0,
            created_at=utcnow(),
        )
        s.add(grid)
        s.flush()

        cells = [
            DiscoveryCell(
                grid_id=grid.id,
                sw_lat=t.sw_lat,
                sw_lng=t.sw_lng,
                ne_lat=t.ne_lat,
                ne_lng=t.ne_lng,
                depth=0,
                is_leaf=True,
                status=CellStatus.UNSEARCHED.value,
                bounds_key=cell_key(t.sw_lat, t.sw_lng),
            )
            for t in tiles
        ]
        s.add_all(cells)
        s.flush()
        grid_id = grid.id
        cell_ids = [c.id for c in cells]

    log_event(logger, "discovery_grid_generated", grid_id=grid_id, cell_count=len(cell_ids), cell_size_km=cell_size_km)
    return {"grid_id": grid_id, "cell_ids": cell_ids, "cell_count": len(cell_ids)}


def get_or_create_default_grid() -> Tuple[int, bool]:
    """
    Return (grid_id, created) for the implicit default grid.

    Existence check + insert in one transaction; the first grid on record
    counts as the default.
    """
    with get_session() as s:
        existing = s.execute(select(DiscoveryGrid.id).order_by(DiscoveryGrid.id).limit(1)).scalar()
        if existing is not None:
            return existing, False

        grid = DiscoveryGrid(
            name=config.DEFAULT_GRID_NAME,
            region=config.DEFAULT_GRID_REGION,
            province=config.DEFAULT_GRID_PROVINCE,
            queries=list(config.DEFAULT_QUERIES),
            cell_size_km=config.DEFAULT_CELL_SIZE_KM,
            total_leads_found=0,
            created_at=utcnow(),
        )
        s.add(grid)
        s.flush()
        grid_id = grid.id

    log_event(logger, "discovery_default_grid_created", grid_id=grid_id)
    return grid_id, True


def _grid_summary(grid: DiscoveryGrid) -> Dict[str, Any]:
    return {
        "id": grid.id,
        "name": grid.name,
        "region": grid.region,
        "province": grid.province,
        "queries": list(grid.queries or []),
        "bounds": grid_bounds(grid).as_dict() if grid.has_bounds else None,
        "cell_size_km": grid.cell_size_km,
        "total_leads_found": grid.total_leads_found,
        "created_at": to_iso(grid.created_at),
    }


def get_grid(grid_id: int) -> Dict[str, Any]:
    with get_session() as s:
        return _grid_summary(load_grid(s, grid_id))


def list_grids() -> List[Dict[str, Any]]:
    """Every grid with leaf-cell counts per status."""
    with get_session() as s:
        grids = s.execute(select(DiscoveryGrid).order_by(DiscoveryGrid.id)).scalars().all()
        counts = s.execute(
            select(DiscoveryCell.grid_id, DiscoveryCell.status, func.count())
            .where(DiscoveryCell.is_leaf.is_(True))
            .group_by(DiscoveryCell.grid_id, DiscoveryCell.status)
        ).all()

        by_grid: Dict[int, Dict[str, int]] = {}
        for grid_id, status, n in counts:
            by_grid.setdefault(grid_id, {})[status] = int(n)

        out = []
        for g in grids:
            c = by_grid.get(g.id, {})
            row = _grid_summary(g)
            row.update({
                "total_leaf_cells": sum(c.values()),
                "searched_count": c.get(CellStatus.SEARCHED.value, 0),
                "saturated_count": c.get(CellStatus.SATURATED.value, 0),
                "searching_count": c.get(CellStatus.SEARCHING.value, 0),
            })
            out.append(row)
        return out


def update_grid_queries(grid_id: int, queries: Sequence[str]) -> List[str]:
    with get_session() as s:
        grid = load_grid(s, grid_id)
        grid.queries = _clean_queries(queries)
        new_queries = list(grid.queries)
    log_event(logger, "discovery_grid_queries_updated", grid_id=grid_id, queries=new_queries)
    return new_queries


def update_grid_metadata(grid_id: int, region: Optional[str] = None, province: Optional[str] = None) -> None:
    """Patch region/province; None leaves a field untouched."""
    with get_session() as s:
        grid = load_grid(s, grid_id)
        if region is not None:
            grid.region = region
        if province is not None:
            grid.province = province


def purge_discovery_grids() -> Dict[str, int]:
    """
    Admin reset: drop every cell and grid in one go.

    Only for small/dev datasets; production deletes go through the batched
    cascading delete instead.
    """
    with get_session() as s:
        # children before parents for the self-referencing FK
        max_depth = s.execute(select(func.max(DiscoveryCell.depth))).scalar() or 0
        deleted_cells = 0
        for depth in range(int(max_depth), -1, -1):
            res = s.execute(delete(DiscoveryCell).where(DiscoveryCell.depth == depth))
            deleted_cells += int(res.rowcount or 0)
        res = s.execute(delete(DiscoveryGrid))
        deleted_grids = int(res.rowcount or 0)

    log_event(logger, "discovery_grids_purged", level=logging.WARNING,
              deleted_cells=deleted_cells, deleted_grids=deleted_grids)
    return {"deleted_cells": deleted_cells, "deleted_grids": deleted_grids}
