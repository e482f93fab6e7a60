"""Tests for cell activation, claims and search-result recording."""

from datetime import timedelta

import pytest

from leadgrid.discovery.cells import (
    activate_cell, claim_cell_for_search, get_cell, list_cells, record_search_result,
    release_stale_claims, update_cell_status,
)
from leadgrid.discovery.errors import (
    CellNotFoundError, GridNotFoundError, InvalidBoundsError, InvalidTransitionError,
)
from leadgrid.discovery.grids import get_grid
from leadgrid.discovery.models import BoundingBox
from leadgrid.discovery.util import utcnow
from leadgrid.discovery.virtual_grid import compute_virtual_grid, exclude_activated

pytestmark = pytest.mark.usefixtures("db")


@pytest.fixture
def tile():
    return compute_virtual_grid(BoundingBox(43.0, -80.0, 43.3, -79.5), 10)[0]


@pytest.fixture
def cell_id(default_grid_id, tile):
    return activate_cell(default_grid_id, tile.key, tile.box).cell_id


class TestActivateCell:

    def test_idempotent(self, default_grid_id, tile):
        first = activate_cell(default_grid_id, tile.key, tile.box)
        second = activate_cell(default_grid_id, tile.key, tile.box)

        assert first.already_existed is False
        assert second.already_existed is True
        assert first.cell_id == second.cell_id
        assert len(list_cells(default_grid_id)["cells"]) == 1

    def test_new_cell_shape(self, default_grid_id, tile, cell_id):
        cell = get_cell(cell_id)

        assert cell["status"] == "unsearched"
        assert cell["depth"] == 0
        assert cell["is_leaf"] is True
        assert cell["bounds_key"] == tile.key
        assert cell["sw_lat"] == tile.sw_lat
        assert cell["grid"]["id"] == default_grid_id

    def test_activated_tile_leaves_overlay(self, default_grid_id):
        tiles = compute_virtual_grid(BoundingBox(43.0, -80.0, 43.3, -79.5), 10)
        activate_cell(default_grid_id, tiles[1].key, tiles[1].box)

        keys = list_cells(default_grid_id)["activated_bounds_keys"]
        remaining = exclude_activated(tiles, keys)

        assert keys == [tiles[1].key]
        assert len(remaining) == len(tiles) - 1
        assert tiles[1] not in remaining

    def test_outside_bounded_grid(self, bounded_grid):
        far = BoundingBox(45.0, -75.0, 45.1, -74.9)
        with pytest.raises(InvalidBoundsError):
            activate_cell(bounded_grid["grid_id"], "45.000000_-75.000000", far)

    def test_missing_key(self, default_grid_id, tile):
        with pytest.raises(InvalidBoundsError):
            activate_cell(default_grid_id, "  ", tile.box)

    def test_unknown_grid(self, db, tile):
        with pytest.raises(GridNotFoundError):
            activate_cell(12345, tile.key, tile.box)


class TestClaim:

    def test_claim_moves_to_searching(self, cell_id):
        out = claim_cell_for_search(cell_id)

        assert out == {"claimed": True, "previous_status": "unsearched"}
        assert get_cell(cell_id)["status"] == "searching"

    def test_second_claim_fails(self, cell_id):
        claim_cell_for_search(cell_id)
        out = claim_cell_for_search(cell_id)

        assert out == {"claimed": False, "previous_status": "searching"}

    def test_expected_statuses(self, cell_id):
        out = claim_cell_for_search(cell_id, expected_statuses=["searched"])
        assert out["claimed"] is False
        assert get_cell(cell_id)["status"] == "unsearched"

    def test_unknown_cell(self, db):
        with pytest.raises(CellNotFoundError):
            claim_cell_for_search(404)


class TestRecordSearchResult:

    def test_saturated_then_searched(self, cell_id, default_grid_id):
        claim_cell_for_search(cell_id)
        out = record_search_result(cell_id, {"farms": 60, "orchard": 3}, result_count=63, new_leads=5)

        assert out["status"] == "saturated"
        cell = get_cell(cell_id)
        assert cell["status"] == "saturated"
        assert cell["result_count"] == 63
        assert cell["leads_found"] == 5
        assert cell["last_searched_at"] is not None

        claim_cell_for_search(cell_id)
        out = record_search_result(cell_id, {"farms": 12}, result_count=12, new_leads=2)

        assert out["status"] == "searched"
        assert out["query_saturation"] == [
            {"query": "farms", "count": 12},
            {"query": "orchard", "count": 3},
        ]
        assert get_grid(default_grid_id)["total_leads_found"] == 7

    def test_repeated_write_counts_leads_once(self, cell_id, default_grid_id):
        claim_cell_for_search(cell_id)
        first = record_search_result(cell_id, {"farms": 3}, result_count=3, new_leads=5)
        second = record_search_result(cell_id, {"farms": 60}, result_count=60, new_leads=5)

        assert second == first
        assert get_grid(default_grid_id)["total_leads_found"] == 5
        cell = get_cell(cell_id)
        assert cell["status"] == "searched"
        assert cell["result_count"] == 3

    def test_record_on_unsearched_rejected(self, cell_id):
        with pytest.raises(InvalidTransitionError):
            record_search_result(cell_id, {"farms": 1}, result_count=1)
        assert get_cell(cell_id)["status"] == "unsearched"


class TestUpdateCellStatus:

    def test_rollback_to_unsearched(self, cell_id):
        claim_cell_for_search(cell_id)
        assert update_cell_status(cell_id, "unsearched") == "unsearched"
        assert get_cell(cell_id)["status"] == "unsearched"

    def test_illegal_transition(self, cell_id):
        with pytest.raises(InvalidTransitionError):
            update_cell_status(cell_id, "searched")


class TestReleaseStaleClaims:

    def test_recent_claim_kept(self, cell_id):
        claim_cell_for_search(cell_id)
        assert release_stale_claims(timeout_minutes=30) == 0
        assert get_cell(cell_id)["status"] == "searching"

    def test_orphaned_first_search_reset(self, cell_id):
        claim_cell_for_search(cell_id)
        later = utcnow() + timedelta(minutes=31)

        assert release_stale_claims(timeout_minutes=30, now=later) == 1
        assert get_cell(cell_id)["status"] == "unsearched"

    def test_orphaned_research_restores_result(self, cell_id):
        claim_cell_for_search(cell_id)
        record_search_result(cell_id, {"farms": 60}, result_count=60)
        claim_cell_for_search(cell_id)

        released = release_stale_claims(timeout_minutes=30, now=utcnow() + timedelta(hours=1))

        assert released == 1
        assert get_cell(cell_id)["status"] == "saturated"
