"""Tests for the virtual tile overlay."""

import pytest

from leadgrid.discovery.errors import InvalidBoundsError
from leadgrid.discovery.models import BoundingBox, VirtualCell
from leadgrid.discovery.virtual_grid import (
    band_latitude, compute_virtual_grid, exclude_activated,
)


def _by_key(cells):
    return {c.key: c for c in cells}


class TestComputeVirtualGrid:

    def test_covers_viewport(self):
        viewport = BoundingBox(43.03, -80.07, 43.31, -79.52)
        cells = compute_virtual_grid(viewport, 10)

        assert cells
        assert min(c.sw_lat for c in cells) <= viewport.sw_lat
        assert min(c.sw_lng for c in cells) <= viewport.sw_lng
        assert max(c.ne_lat for c in cells) >= viewport.ne_lat
        assert max(c.ne_lng for c in cells) >= viewport.ne_lng

    def test_keys_unique(self):
        cells = compute_virtual_grid(BoundingBox(43.0, -80.0, 43.5, -79.0), 10)
        assert len(_by_key(cells)) == len(cells)

    def test_pan_keeps_keys_and_corners(self):
        a = compute_virtual_grid(BoundingBox(43.00, -80.00, 43.30, -79.50), 10)
        b = compute_virtual_grid(BoundingBox(43.05, -79.90, 43.35, -79.40), 10)
        ka, kb = _by_key(a), _by_key(b)

        shared = set(ka) & set(kb)
        assert shared
        for key in shared:
            assert ka[key] == kb[key]

    def test_zoom_inside_tile_keeps_key(self):
        wide = _by_key(compute_virtual_grid(BoundingBox(43.0, -80.0, 43.4, -79.4), 10))
        tile = next(iter(wide.values()))
        inner = BoundingBox(tile.sw_lat + 0.01, tile.sw_lng + 0.01, tile.ne_lat - 0.01, tile.ne_lng - 0.01)
        narrow = compute_virtual_grid(inner, 10)

        assert len(narrow) == 1
        assert narrow[0] == tile

    def test_too_many_tiles_returns_empty(self):
        assert compute_virtual_grid(BoundingBox(40.0, -85.0, 50.0, -70.0), 10) == []

    def test_custom_max_cells(self):
        viewport = BoundingBox(43.0, -80.0, 43.5, -79.0)
        n = len(compute_virtual_grid(viewport, 10))
        assert compute_virtual_grid(viewport, 10, max_cells=n) != []
        assert compute_virtual_grid(viewport, 10, max_cells=n - 1) == []

    def test_invalid_viewport(self):
        with pytest.raises(InvalidBoundsError):
            compute_virtual_grid(BoundingBox(43.2, -80.0, 43.0, -79.8), 10)

    def test_non_positive_cell_size(self):
        with pytest.raises(ValueError):
            compute_virtual_grid(BoundingBox(43.0, -80.0, 43.2, -79.8), 0)


class TestBandLatitude:

    def test_rounds_to_band(self):
        assert band_latitude(43.1) == 45.0
        assert band_latitude(42.4) == 40.0

    def test_clamped_near_poles(self):
        assert band_latitude(89.9) == 85.0
        assert band_latitude(-89.9) == -85.0


class TestExcludeActivated:

    def test_drops_persisted_keys(self):
        cells = [
            VirtualCell("a", 0, 0, 1, 1),
            VirtualCell("b", 0, 1, 1, 2),
            VirtualCell("c", 1, 0, 2, 1),
        ]
        out = exclude_activated(cells, ["b", None, ""])
        assert [c.key for c in out] == ["a", "c"]
