from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import InvalidBoundsError


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned lat/lng rectangle (south-west / north-east corners).

    Used for grid bounds, cell boxes, viewports and virtual tiles alike.
    Construction does not validate; call validate() where the box comes
    from a caller (viewport, grid bounds, activation request).
    """
    sw_lat: float
    sw_lng: float
    ne_lat: float
    ne_lng: float

    @classmethod
    def from_row(cls, row: Any) -> "BoundingBox":
        return cls(row.sw_lat, row.sw_lng, row.ne_lat, row.ne_lng)

    @classmethod
    def from_mapping(cls, m: Mapping[str, Any]) -> "BoundingBox":
        try:
            return cls(float(m["sw_lat"]), float(m["sw_lng"]), float(m["ne_lat"]), float(m["ne_lng"]))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidBoundsError(f"Malformed bounding box: {dict(m)!r}", e)

    def validate(self) -> "BoundingBox":
        for v in (self.sw_lat, self.sw_lng, self.ne_lat, self.ne_lng):
            if v is None or v != v:  # None / NaN
                raise InvalidBoundsError(f"Bounding box has a missing coordinate: {self}")
        if not (-90.0 <= self.sw_lat <= 90.0 and -90.0 <= self.ne_lat <= 90.0):
            raise InvalidBoundsError(f"Latitude out of range [-90, 90]: {self}")
        if not (-180.0 <= self.sw_lng <= 180.0 and -180.0 <= self.ne_lng <= 180.0):
            raise InvalidBoundsError(f"Longitude out of range [-180, 180]: {self}")
        if self.sw_lat >= self.ne_lat or self.sw_lng >= self.ne_lng:
            raise InvalidBoundsError(f"South-west corner must be strictly south/west of north-east: {self}")
        return self

    @property
    def midpoint(self) -> Tuple[float, float]:
        return (self.sw_lat + self.ne_lat) / 2, (self.sw_lng + self.ne_lng) / 2

    def contains_box(self, other: "BoundingBox", tol: float = 1e-9) -> bool:
        return (
            other.sw_lat >= self.sw_lat - tol
            and other.sw_lng >= self.sw_lng - tol
            and other.ne_lat <= self.ne_lat + tol
            and other.ne_lng <= self.ne_lng + tol
        )

    def contains_point(self, lat: float, lng: float) -> bool:
        return self.sw_lat <= lat <= self.ne_lat and self.sw_lng <= lng <= self.ne_lng

    def quadrants(self) -> List["BoundingBox"]:
        """Split at the midpoint into SW, SE, NW, NE children."""
        mid_lat, mid_lng = self.midpoint
        return [
            BoundingBox(self.sw_lat, self.sw_lng, mid_lat, mid_lng),
            BoundingBox(self.sw_lat, mid_lng, mid_lat, self.ne_lng),
            BoundingBox(mid_lat, self.sw_lng, self.ne_lat, mid_lng),
            BoundingBox(mid_lat, mid_lng, self.ne_lat, self.ne_lng),
        ]

    def as_dict(self) -> Dict[str, float]:
        return {"sw_lat": self.sw_lat, "sw_lng": self.sw_lng, "ne_lat": self.ne_lat, "ne_lng": self.ne_lng}


@dataclass(frozen=True)
class VirtualCell:
    """
    Ephemeral tile covering geography with no persisted DiscoveryCell yet.

    Exists only for the duration of one compute call; never stored.
    """
    key: str
    sw_lat: float
    sw_lng: float
    ne_lat: float
    ne_lng: float

    @property
    def box(self) -> BoundingBox:
        return BoundingBox(self.sw_lat, self.sw_lng, self.ne_lat, self.ne_lng)


@dataclass(frozen=True)
class ActivationResult:
    cell_id: int
    already_existed: bool


@dataclass
class PlaceResult:
    """
    One raw result returned by the external search collaborator.

    `place_id` is the provider's stable id (used to dedupe across queries);
    `raw` keeps the provider payload for the lead sink.
    """
    place_id: str
    name: str
    lat: Optional[float]
    lng: Optional[float]
    raw: Dict[str, Any]
