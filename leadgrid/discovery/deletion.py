"""
Cascading grid deletion.

A grid can own far more cells than one transaction should touch, so
deletion is a loop of bounded batches followed by the grid row itself:

    while delete_cell_batch(grid) == DELETE_BATCH_SIZE: keep going
    delete grid record

A short batch (fewer than DELETE_BATCH_SIZE) is taken as proof that no
cells remain; there is no extra empty-batch probe. Every step is
idempotent, so a crashed run is resumed just by running it again.

Prefect-free on purpose; the flow wrapper lives in flows/delete_grid_flow.py.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy import delete, select

from leadgrid.db import get_session
from leadgrid.schema import DiscoveryCell, DiscoveryGrid

from . import config
from .grids import load_grid
from .util import log_event

logger = logging.getLogger(__name__)

Scheduler = Callable[[int], Any]


def delete_cell_batch(grid_id: int, batch_size: Optional[int] = None) -> int:
    """
    Delete up to `batch_size` cells of a grid (deepest first, so no child
    outlives its parent row). Returns how many were deleted.
    """
    batch_size = batch_size or config.DELETE_BATCH_SIZE

    with get_session() as s:
        ids = s.execute(
            select(DiscoveryCell.id)
            .where(DiscoveryCell.grid_id == grid_id)
            .order_by(DiscoveryCell.depth.desc(), DiscoveryCell.id)
            .limit(batch_size)
        ).scalars().all()
        if not ids:
            return 0

        res = s.execute(
            delete(DiscoveryCell)
            .where(DiscoveryCell.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        deleted = int(res.rowcount or 0)

    log_event(logger, "discovery_cell_batch_deleted", grid_id=grid_id, deleted=deleted, batch_size=batch_size)
    return deleted


def delete_grid_record(grid_id: int) -> bool:
    with get_session() as s:
        res = s.execute(delete(DiscoveryGrid).where(DiscoveryGrid.id == grid_id))
        return int(res.rowcount or 0) > 0


def delete_grid(grid_id: int, batch_size: Optional[int] = None) -> Dict[str, Any]:
    """
    Delete all cells of a grid batch by batch, then the grid record.

    Safe to re-run after a crash at any point; a grid that is already gone
    simply reports grid_deleted=False.
    """
    batch_size = batch_size or config.DELETE_BATCH_SIZE

    batches = 0
    cells_deleted = 0
    while True:
        n = delete_cell_batch(grid_id, batch_size)
        batches += 1
        cells_deleted += n
        if n < batch_size:
            break

    grid_deleted = delete_grid_record(grid_id)

    summary = {
        "grid_id": grid_id,
        "batches": batches,
        "cells_deleted": cells_deleted,
        "grid_deleted": grid_deleted,
    }
    log_event(logger, "discovery_grid_deleted", **summary)
    return summary


def _run_delete_deployment(grid_id: int) -> Any:
    """Kick off the delete-discovery-grid deployment without waiting for it."""
    from prefect.deployments import run_deployment  # type: ignore

    return run_deployment(
        config.DELETE_GRID_DEPLOYMENT,
        parameters={"grid_id": grid_id},
        timeout=0,
    )


def request_delete_grid(grid_id: int, scheduler: Optional[Scheduler] = None) -> Dict[str, Any]:
    """
    User-facing delete: validate the grid exists, then hand the cascading
    delete to `scheduler` (default: the Prefect deployment) and return
    immediately.
    """
    with get_session() as s:
        load_grid(s, grid_id)

    scheduler = scheduler or _run_delete_deployment
    handle = scheduler(grid_id)

    log_event(
        logger,
        "discovery_grid_delete_requested",
        grid_id=grid_id,
        flow_run_id=getattr(handle, "id", None),
    )
    return {"grid_id": grid_id, "scheduled": True, "flow_run_id": getattr(handle, "id", None)}
