"""Shared fixtures for discovery grid tests."""

import os

# must be set before anything asks leadgrid.db for an engine
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

import pytest

from leadgrid.db import get_engine, reset_engine
from leadgrid.discovery.grids import generate_grid, get_or_create_default_grid
from leadgrid.discovery.models import BoundingBox
from leadgrid.schema import Base


@pytest.fixture
def db():
    """Fresh in-memory schema per test."""
    reset_engine()
    engine = get_engine()
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    reset_engine()


@pytest.fixture
def scenario_bounds():
    """Small southern-Ontario box used across grid tests."""
    return BoundingBox(43.0, -80.0, 43.2, -79.8)


@pytest.fixture
def bounded_grid(db, scenario_bounds):
    """Eagerly generated grid: 2 depth-0 cells at 20km."""
    return generate_grid(
        "Test Grid",
        "Waterloo",
        "Ontario",
        scenario_bounds,
        queries=["farms", "orchard"],
        cell_size_km=20,
    )


@pytest.fixture
def default_grid_id(db):
    grid_id, _ = get_or_create_default_grid()
    return grid_id
