"""
Run one discovery search over a persisted cell.

    claim -> query each grid search term around the cell centre
          -> dedupe by place id -> keep places inside the cell box
          -> hand them to the lead sink -> record the result

The external search and the lead store are injected callables, so this
module stays free of provider clients and of the leads table:

    search_fn(query, lat, lng, radius_km) -> (results, total_count)
    lead_sink(places, cell) -> number of new leads

If anything after the claim fails, the cell goes back to the status it
was claimed from and the error propagates.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .cells import claim_cell_for_search, get_cell, record_search_result, update_cell_status
from .errors import CellBusyError
from .geo import haversine_km
from .models import BoundingBox, PlaceResult
from .util import log_event

logger = logging.getLogger(__name__)

SearchFn = Callable[[str, float, float, float], Tuple[Sequence[PlaceResult], int]]
LeadSink = Callable[[List[PlaceResult], Dict[str, Any]], int]


def search_radius_km(box: BoundingBox) -> float:
    """Radius of the circle around the box centre that reaches its corners."""
    lat, lng = box.midpoint
    return haversine_km(lat, lng, box.ne_lat, box.ne_lng)


def dedupe_places(batches: Sequence[Sequence[PlaceResult]]) -> List[PlaceResult]:
    seen = set()
    out: List[PlaceResult] = []
    for batch in batches:
        for p in batch:
            if not p.place_id or p.place_id in seen:
                continue
            seen.add(p.place_id)
            out.append(p)
    return out


def places_in_box(places: Sequence[PlaceResult], box: BoundingBox) -> List[PlaceResult]:
    # the search circle overhangs the box; neighbours own what falls outside
    return [
        p for p in places
        if p.lat is not None and p.lng is not None and box.contains_point(p.lat, p.lng)
    ]


def run_cell_search(
    cell_id: int,
    search_fn: SearchFn,
    lead_sink: Optional[LeadSink] = None,
) -> Dict[str, Any]:
    claim = claim_cell_for_search(cell_id)
    if not claim["claimed"]:
        raise CellBusyError(
            f"Cell {cell_id} cannot be searched right now (status={claim['previous_status']})"
        )
    previous = claim["previous_status"]

    try:
        cell = get_cell(cell_id)
        box = BoundingBox.from_mapping(cell)
        lat, lng = box.midpoint
        radius_km = search_radius_km(box)

        per_query: Dict[str, int] = {}
        batches: List[Sequence[PlaceResult]] = []
        for query in cell["grid"]["queries"]:
            results, total = search_fn(query, lat, lng, radius_km)
            per_query[query] = int(total or 0)
            batches.append(list(results or []))

        unique = dedupe_places(batches)
        inside = places_in_box(unique, box)
        new_leads = int(lead_sink(inside, cell) or 0) if lead_sink else 0

        recorded = record_search_result(
            cell_id,
            per_query,
            result_count=len(inside),
            new_leads=new_leads,
        )
    except Exception as e:
        log_event(logger, "discovery_cell_search_failed", level=logging.ERROR,
                  cell_id=cell_id, restored_status=previous, error=str(e))
        try:
            update_cell_status(cell_id, previous)
        except Exception as rollback_err:
            # claim already moved on (e.g. released by the sweeper); keep the search error
            log_event(logger, "discovery_cell_rollback_failed", level=logging.ERROR,
                      cell_id=cell_id, restored_status=previous, error=str(rollback_err))
        raise

    summary = {
        "cell_id": cell_id,
        "status": recorded["status"],
        "query_saturation": recorded["query_saturation"],
        "total_results": len(unique),
        "results_in_cell": len(inside),
        "new_leads": new_leads,
        "radius_km": radius_km,
    }
    log_event(logger, "discovery_cell_searched", **{k: v for k, v in summary.items() if k != "query_saturation"})
    return summary
