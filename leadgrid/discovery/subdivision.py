"""
Quadtree split / merge for discovery cells.

subdivide_cell(): one cell -> 4 quadrant leaves at depth + 1. The parent row
stays (keeps its search history) but stops being a leaf, so it is never
searched again while split.

undivide_cell(): deletes every descendant of the merge target and makes the
target a leaf again, with whatever status/results it had before the split.

Both refuse to run while a search is in flight on the affected cells.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Deque, Dict, List

from sqlalchemy import delete

from leadgrid.db import get_session
from leadgrid.schema import DiscoveryCell

from . import config
from .cells import list_children, load_cell
from .errors import CellBusyError, MaxDepthError, RootMergeError
from .geo import cell_key
from .models import BoundingBox
from .states import CellStatus, can_restructure
from .util import log_event

logger = logging.getLogger(__name__)


def subdivide_cell(cell_id: int) -> List[int]:
    """
    Split a cell into SW, SE, NW, NE children and return their ids.

    Re-running on an already split cell returns the existing children
    (filling in any quadrant a crashed earlier run did not get to).
    """
    with get_session() as s:
        cell = load_cell(s, cell_id)

        if not can_restructure(cell.status):
            raise CellBusyError("Cannot subdivide while cell is being searched")
        if cell.depth >= config.MAX_DEPTH:
            raise MaxDepthError(f"Cell is already at maximum depth ({config.MAX_DEPTH})")

        existing = {c.bounds_key: c for c in list_children(s, cell_id)}
        child_depth = cell.depth + 1

        children: List[DiscoveryCell] = []
        created = 0
        for q in BoundingBox.from_row(cell).quadrants():
            key = cell_key(q.sw_lat, q.sw_lng)
            child = existing.get(key)
            if child is None:
                child = DiscoveryCell(
                    grid_id=cell.grid_id,
                    parent_cell_id=cell.id,
                    sw_lat=q.sw_lat,
                    sw_lng=q.sw_lng,
                    ne_lat=q.ne_lat,
                    ne_lng=q.ne_lng,
                    depth=child_depth,
                    is_leaf=True,
                    status=CellStatus.UNSEARCHED.value,
                    bounds_key=key,
                )
                s.add(child)
                created += 1
            children.append(child)

        cell.is_leaf = False
        s.flush()
        child_ids = [c.id for c in children]

    if created:
        log_event(logger, "discovery_cell_subdivided", cell_id=cell_id, depth=child_depth, child_ids=child_ids)
    return child_ids


def _merge_target(cell: DiscoveryCell) -> int:
    # A child merges into its parent; a split cell whose parent pointer is
    # not tracked merges its own children back into itself.
    return cell.parent_cell_id if cell.parent_cell_id is not None else cell.id


def undivide_cell(cell_id: int) -> Dict[str, Any]:
    """
    Merge a non-root cell back into a single leaf.

    Eligibility is depth > 0 only. Rejected if the target or any
    descendant is `searching`.
    """
    with get_session() as s:
        cell = load_cell(s, cell_id)
        if cell.depth <= 0:
            raise RootMergeError("Root cells cannot be merged: there is no parent to merge into")

        target = load_cell(s, _merge_target(cell))
        if not can_restructure(target.status):
            raise CellBusyError("Cannot undivide while cell is being searched")

        # BFS over all descendants; deeper levels get deleted first
        to_delete: List[DiscoveryCell] = []
        queue: Deque[int] = deque([target.id])
        while queue:
            for child in list_children(s, queue.popleft()):
                to_delete.append(child)
                queue.append(child.id)

        if any(not can_restructure(c.status) for c in to_delete):
            raise CellBusyError("Cannot undivide while a child cell is being searched")

        for c in sorted(to_delete, key=lambda c: c.depth, reverse=True):
            s.execute(delete(DiscoveryCell).where(DiscoveryCell.id == c.id).execution_options(synchronize_session=False))
            s.expunge(c)

        target.is_leaf = True
        target_id = target.id

    log_event(logger, "discovery_cell_undivided", cell_id=cell_id, target_cell_id=target_id, deleted_count=len(to_delete))
    return {"target_cell_id": target_id, "deleted_count": len(to_delete)}
