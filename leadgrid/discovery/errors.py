"""Discovery-grid exceptions, surfaced synchronously to the caller."""

from typing import Optional


class DiscoveryError(Exception):
    """Base discovery error."""
    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(message)
        self.original_exception = original_exception


# --- validation ---------------------------------------------------------

class InvalidBoundsError(DiscoveryError):
    """Raised for malformed or degenerate bounding boxes."""
    pass


class GridNotFoundError(DiscoveryError):
    """Raised when a grid id does not resolve to a record."""
    pass


class CellNotFoundError(DiscoveryError):
    """Raised when a cell id does not resolve to a record."""
    pass


# --- state conflicts ----------------------------------------------------

class StateConflictError(DiscoveryError):
    """Base for operations rejected because of the cell's current state."""
    pass


class CellBusyError(StateConflictError):
    """Raised when a structural change is attempted while a search is in flight."""
    pass


class RootMergeError(StateConflictError):
    """Raised when undivide is attempted on a depth-0 cell."""
    pass


class MaxDepthError(StateConflictError):
    """Raised when subdividing a cell already at the maximum depth."""
    pass


class InvalidTransitionError(StateConflictError):
    """Raised for a status change the cell state machine does not allow."""
    pass
