from __future__ import annotations

import json
from typing import Any, Dict, Optional

from prefect import flow, get_run_logger
from prefect.runtime import flow_run  # type: ignore

from leadgrid.discovery.deletion import delete_grid


@flow(name="delete-discovery-grid", persist_result=False)
def delete_discovery_grid(grid_id: int, batch_size: Optional[int] = None) -> Dict[str, Any]:
    """
    Background half of a grid delete.

    request_delete_grid() schedules this deployment and returns right away;
    the flow deletes cells in batches and finally the grid row. Re-running
    it for the same grid is safe (a crashed run just resumes).
    """
    logger = get_run_logger()
    run_id = getattr(flow_run, "id", None)
    logger.info(json.dumps({"event": "discovery_grid_delete_started", "grid_id": grid_id,
                            "run_id": str(run_id) if run_id else None}, sort_keys=True))

    try:
        summary = delete_grid(grid_id, batch_size=batch_size)
    except Exception as e:
        logger.error(json.dumps({"event": "discovery_grid_delete_failed", "grid_id": grid_id,
                                 "error": str(e)}, sort_keys=True))
        raise

    if not summary["grid_deleted"]:
        # nothing to remove: grid already gone (duplicate request or resumed run)
        logger.warning(json.dumps({"event": "discovery_grid_delete_noop", **summary}, sort_keys=True))

    logger.info(json.dumps({"event": "discovery_grid_delete_complete", **summary}, sort_keys=True))
    return summary


if __name__ == "__main__":
    import sys

    delete_discovery_grid(int(sys.argv[1]))
