"""
Persisted discovery cells: activation, search claims and result recording.

Every public function here is one transaction (one atomic mutation).
Nothing spans calls; callers that need several steps (see search.py)
rely on each step being safe to repeat.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from leadgrid.db import get_session
from leadgrid.schema import DiscoveryCell

from . import config
from .errors import CellNotFoundError, InvalidBoundsError
from .grids import grid_bounds, load_grid
from .models import ActivationResult, BoundingBox
from .saturation import QueryCounts, classify_saturation, merge_query_saturation
from .states import SEARCHABLE, CellStatus, check_record, check_transition
from .util import as_utc, log_event, to_iso, utcnow

logger = logging.getLogger(__name__)


def load_cell(session: Session, cell_id: int) -> DiscoveryCell:
    cell = session.get(DiscoveryCell, cell_id)
    if cell is None:
        raise CellNotFoundError(f"Cell not found: {cell_id}")
    return cell


def cell_to_dict(cell: DiscoveryCell) -> Dict[str, Any]:
    return {
        "id": cell.id,
        "grid_id": cell.grid_id,
        "parent_cell_id": cell.parent_cell_id,
        "sw_lat": cell.sw_lat,
        "sw_lng": cell.sw_lng,
        "ne_lat": cell.ne_lat,
        "ne_lng": cell.ne_lng,
        "depth": cell.depth,
        "is_leaf": bool(cell.is_leaf),
        "status": cell.status,
        "result_count": cell.result_count,
        "query_saturation": list(cell.query_saturation or []) or None,
        "last_searched_at": as_utc(cell.last_searched_at),
        "bounds_key": cell.bounds_key,
        "leads_found": cell.leads_found,
    }


# -----------------------------
# Activation (virtual -> persisted)
# -----------------------------
def activate_cell(grid_id: int, bounds_key: str, box: BoundingBox, depth: int = 0) -> ActivationResult:
    """
    Find-or-create the cell for a virtual tile, keyed by (grid_id, bounds_key).

    Repeat calls return the same cell with already_existed=True.
    Check-then-insert is not serialized across concurrent callers; two
    simultaneous activations of one tile can still both insert.
    """
    bounds_key = (bounds_key or "").strip()
    if not bounds_key:
        raise InvalidBoundsError("bounds_key is required to activate a cell")
    box.validate()

    with get_session() as s:
        grid = load_grid(s, grid_id)
        gb = grid_bounds(grid)
        if gb is not None and not gb.contains_box(box):
            raise InvalidBoundsError(f"Cell box {box} lies outside grid {grid_id} bounds {gb}")

        existing = s.execute(
            select(DiscoveryCell.id)
            .where(DiscoveryCell.grid_id == grid_id, DiscoveryCell.bounds_key == bounds_key)
            .order_by(DiscoveryCell.id)
            .limit(1)
        ).scalar()
        if existing is not None:
            return ActivationResult(cell_id=existing, already_existed=True)

        cell = DiscoveryCell(
            grid_id=grid_id,
            sw_lat=box.sw_lat,
            sw_lng=box.sw_lng,
            ne_lat=box.ne_lat,
            ne_lng=box.ne_lng,
            depth=int(depth),
            is_leaf=True,
            status=CellStatus.UNSEARCHED.value,
            bounds_key=bounds_key,
        )
        s.add(cell)
        s.flush()
        cell_id = cell.id

    log_event(logger, "discovery_cell_activated", grid_id=grid_id, cell_id=cell_id, bounds_key=bounds_key)
    return ActivationResult(cell_id=cell_id, already_existed=False)


# -----------------------------
# Reads
# -----------------------------
def get_cell(cell_id: int) -> Dict[str, Any]:
    """Cell plus the grid fields a search needs (queries, region, province)."""
    with get_session() as s:
        cell = load_cell(s, cell_id)
        grid = load_grid(s, cell.grid_id)
        out = cell_to_dict(cell)
        out["grid"] = {
            "id": grid.id,
            "name": grid.name,
            "queries": list(grid.queries or []),
            "region": grid.region,
            "province": grid.province,
        }
        return out


def list_cells(grid_id: int) -> Dict[str, Any]:
    """
    Leaf cells of a grid, plus the bounds keys of its depth-0 cells.

    `activated_bounds_keys` is what the map passes to
    virtual_grid.exclude_activated() so a tile is never drawn twice.
    """
    with get_session() as s:
        load_grid(s, grid_id)
        leaves = s.execute(
            select(DiscoveryCell)
            .where(DiscoveryCell.grid_id == grid_id, DiscoveryCell.is_leaf.is_(True))
            .order_by(DiscoveryCell.id)
        ).scalars().all()
        keys = s.execute(
            select(DiscoveryCell.bounds_key)
            .where(DiscoveryCell.grid_id == grid_id, DiscoveryCell.depth == 0, DiscoveryCell.bounds_key.is_not(None))
        ).scalars().all()

        return {
            "cells": [cell_to_dict(c) for c in leaves],
            "activated_bounds_keys": list(keys),
        }


def list_children(session: Session, cell_id: int) -> List[DiscoveryCell]:
    return list(
        session.execute(
            select(DiscoveryCell).where(DiscoveryCell.parent_cell_id == cell_id).order_by(DiscoveryCell.id)
        ).scalars().all()
    )


# -----------------------------
# Search lifecycle
# -----------------------------
def claim_cell_for_search(cell_id: int, expected_statuses: Optional[Iterable[Any]] = None) -> Dict[str, Any]:
    """
    Atomically move a cell to `searching` if its status is one of
    `expected_statuses` (default: every status a search may start from).

    Returns {"claimed": bool, "previous_status": str}. The conditional
    UPDATE is the guard: of two racing claimers only one sees rowcount 1.
    """
    expected = [CellStatus.parse(x) for x in (expected_statuses or SEARCHABLE)]
    allowed = [x.value for x in expected if x in SEARCHABLE]

    with get_session() as s:
        cell = load_cell(s, cell_id)
        previous = cell.status
        # a split parent is never searched again; only its leaves are
        if not cell.is_leaf or previous not in allowed:
            return {"claimed": False, "previous_status": previous}

        res = s.execute(
            update(DiscoveryCell)
            .where(
                DiscoveryCell.id == cell_id,
                DiscoveryCell.status == previous,
                DiscoveryCell.is_leaf.is_(True),
            )
            .values(status=CellStatus.SEARCHING.value, searching_since=utcnow())
            .execution_options(synchronize_session=False)
        )
        claimed = int(res.rowcount or 0) == 1

    if claimed:
        log_event(logger, "discovery_cell_claimed", cell_id=cell_id, previous_status=previous)
    return {"claimed": claimed, "previous_status": previous}


def update_cell_status(cell_id: int, status: Any) -> str:
    """Set a status through the state machine (used to roll back a failed search)."""
    with get_session() as s:
        cell = load_cell(s, cell_id)
        target = check_transition(cell.status, status)
        cell.status = target.value
        if target != CellStatus.SEARCHING:
            cell.searching_since = None
        return target.value


def record_search_result(
    cell_id: int,
    per_query_counts: QueryCounts,
    result_count: int,
    new_leads: int = 0,
    now: Optional[datetime] = None,
    threshold: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Fold one search run into the cell.

    - query_saturation: replace-by-query merge of `per_query_counts`
    - status: saturated if any query hit SATURATION_THRESHOLD, else searched
    - result_count / last_searched_at / leads_found overwritten
    - grid.total_leads_found += new_leads

    Applied only while the cell is `searching`. A repeated write landing on an
    already searched/saturated cell changes nothing, so lead totals are
    counted once per claim.
    """
    now = now or utcnow()

    with get_session() as s:
        cell = load_cell(s, cell_id)
        current = check_record(cell.status)
        if current != CellStatus.SEARCHING:
            # no claim in flight: a replayed write of a result already folded in
            log_event(logger, "discovery_cell_search_record_skipped", level=logging.WARNING,
                      cell_id=cell_id, status=current.value)
            return {"status": current.value, "query_saturation": list(cell.query_saturation or [])}

        saturation = merge_query_saturation(cell.query_saturation, per_query_counts)
        target = check_transition(current, classify_saturation(per_query_counts, threshold))

        cell.status = target.value
        cell.query_saturation = saturation
        cell.result_count = max(0, int(result_count or 0))
        cell.last_searched_at = now
        cell.leads_found = max(0, int(new_leads or 0))
        cell.searching_since = None

        grid = load_grid(s, cell.grid_id)
        grid.total_leads_found = int(grid.total_leads_found or 0) + cell.leads_found

    log_event(
        logger,
        "discovery_cell_search_recorded",
        cell_id=cell_id,
        status=target.value,
        result_count=int(result_count or 0),
        new_leads=int(new_leads or 0),
        last_searched_at=to_iso(now),
    )
    return {"status": target.value, "query_saturation": saturation}


def release_stale_claims(timeout_minutes: Optional[int] = None, now: Optional[datetime] = None) -> int:
    """
    Reset cells left in `searching` longer than the timeout (crashed search).

    A cell with a recorded search goes back to searched/saturated based on
    its saturation list; one that never finished a search goes back to
    unsearched. Returns how many cells were released.
    """
    timeout_minutes = config.SEARCHING_TIMEOUT_MINUTES if timeout_minutes is None else timeout_minutes
    now = now or utcnow()
    cutoff = now - timedelta(minutes=timeout_minutes)

    released = 0
    with get_session() as s:
        stuck = s.execute(
            select(DiscoveryCell).where(DiscoveryCell.status == CellStatus.SEARCHING.value)
        ).scalars().all()
        for cell in stuck:
            since = as_utc(cell.searching_since)
            # no timestamp == claimed before claims were stamped; treat as orphaned
            if since is not None and since > cutoff:
                continue
            if cell.last_searched_at is not None:
                restored = classify_saturation(cell.query_saturation)
            else:
                restored = CellStatus.UNSEARCHED
            cell.status = restored.value
            cell.searching_since = None
            released += 1
            log_event(logger, "discovery_cell_claim_released", level=logging.WARNING,
                      cell_id=cell.id, restored_status=restored.value, searching_since=to_iso(since))
    return released
