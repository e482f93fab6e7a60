"""
Cell status state machine.

    unsearched --claim--> searching --record--> searched | saturated
    searched | saturated --claim--> searching          (re-search)
    searching --rollback--> <status it was claimed from>

Structural actions (subdivide / undivide) are allowed from every status
except `searching`, which acts as the in-flight marker for a search.
There is no terminal state.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, List

from . import config
from .errors import InvalidTransitionError


class CellStatus(str, Enum):
    UNSEARCHED = "unsearched"
    SEARCHING = "searching"
    SEARCHED = "searched"
    SATURATED = "saturated"

    @classmethod
    def parse(cls, raw: Any) -> "CellStatus":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            raise InvalidTransitionError(f"Unknown cell status: {raw!r}")


_TRANSITIONS: Dict[CellStatus, FrozenSet[CellStatus]] = {
    CellStatus.UNSEARCHED: frozenset({CellStatus.SEARCHING}),
    # the UNSEARCHED exit is the rollback path for a failed first search
    CellStatus.SEARCHING: frozenset({CellStatus.SEARCHED, CellStatus.SATURATED, CellStatus.UNSEARCHED}),
    CellStatus.SEARCHED: frozenset({CellStatus.SEARCHING}),
    CellStatus.SATURATED: frozenset({CellStatus.SEARCHING}),
}

SEARCHABLE: FrozenSet[CellStatus] = frozenset(
    s for s, targets in _TRANSITIONS.items() if CellStatus.SEARCHING in targets
)
COMPLETED: FrozenSet[CellStatus] = frozenset({CellStatus.SEARCHED, CellStatus.SATURATED})


def can_transition(current: Any, target: Any) -> bool:
    current = CellStatus.parse(current)
    target = CellStatus.parse(target)
    if current == target and current != CellStatus.SEARCHING:
        # re-recording a result (or re-setting the same status) is a no-op, not a transition
        return True
    return target in _TRANSITIONS[current]


def check_transition(current: Any, target: Any) -> CellStatus:
    """Return the parsed target status or raise InvalidTransitionError."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Illegal cell status transition: {CellStatus.parse(current).value} -> {CellStatus.parse(target).value}"
        )
    return CellStatus.parse(target)


def check_record(current: Any) -> CellStatus:
    """
    A search result may land on a cell that is `searching` (normal path) or
    already searched/saturated (late or repeated write of the same run,
    which the caller treats as a no-op).
    """
    current = CellStatus.parse(current)
    if current != CellStatus.SEARCHING and current not in COMPLETED:
        raise InvalidTransitionError(f"Cannot record a search result on a {current.value} cell")
    return current


def can_restructure(status: Any) -> bool:
    return CellStatus.parse(status) != CellStatus.SEARCHING


def available_actions(depth: int) -> List[Dict[str, str]]:
    """
    Actions offered on a cell at `depth`:
      - one search action per enabled mechanism
      - subdivide while depth < MAX_DEPTH
      - undivide for any non-root cell (depth > 0), with or without a parent pointer
    """
    actions: List[Dict[str, str]] = [
        {"type": "search", "mechanism": m["id"]}
        for m in config.DISCOVERY_MECHANISMS
        if m.get("enabled")
    ]
    if depth < config.MAX_DEPTH:
        actions.append({"type": "subdivide"})
    if depth > 0:
        actions.append({"type": "undivide"})
    return actions
