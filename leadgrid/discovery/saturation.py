"""
Per-query result-count bookkeeping.

A cell's `query_saturation` holds one {"query", "count"} entry per search
query. Re-searching replaces entries by query name rather than appending,
so the list always reflects the latest run of each query.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from . import config
from .states import CellStatus

SaturationEntries = List[Dict[str, Any]]
QueryCounts = Union[Mapping[str, int], Iterable[Mapping[str, Any]]]


def normalize_counts(counts: Optional[QueryCounts]) -> SaturationEntries:
    """Accept {query: count} or [{"query", "count"}, ...]; return the list form."""
    if not counts:
        return []
    if isinstance(counts, Mapping):
        items = counts.items()
    else:
        items = ((e.get("query"), e.get("count")) for e in counts)

    out: SaturationEntries = []
    for query, count in items:
        query = (query or "").strip()
        if not query:
            continue
        out.append({"query": query, "count": max(0, int(count or 0))})
    return out


def merge_query_saturation(existing: Optional[QueryCounts], new: Optional[QueryCounts]) -> SaturationEntries:
    """Replace-by-query merge; first-seen order is kept, new queries are appended."""
    merged: Dict[str, int] = {}
    for e in normalize_counts(existing):
        merged[e["query"]] = e["count"]
    for e in normalize_counts(new):
        merged[e["query"]] = e["count"]
    return [{"query": q, "count": c} for q, c in merged.items()]


def is_query_saturated(count: int, threshold: Optional[int] = None) -> bool:
    threshold = config.SATURATION_THRESHOLD if threshold is None else threshold
    return int(count) >= threshold


def classify_saturation(entries: Optional[QueryCounts], threshold: Optional[int] = None) -> CellStatus:
    """
    `saturated` when at least one query came back at the provider's result
    cap (more results are probably hidden behind it; subdivide for finer
    coverage), otherwise `searched`.
    """
    for e in normalize_counts(entries):
        if is_query_saturated(e["count"], threshold):
            return CellStatus.SATURATED
    return CellStatus.SEARCHED
