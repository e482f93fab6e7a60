from sqlalchemy import (
    JSON, Boolean, Column, BigInteger, Float, ForeignKey, Index, Integer,
    String, TIMESTAMP, func, text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# BIGINT ids in Postgres; SQLite only autoincrements INTEGER PRIMARY KEY.
_ID = BigInteger().with_variant(Integer, "sqlite")
_JSON = JSON().with_variant(JSONB, "postgresql")


class DiscoveryGrid(Base):
    __tablename__ = "discovery_grids"

    id = Column(_ID, primary_key=True, autoincrement=True)
    name = Column(String(256), nullable=False)
    region = Column(String(128), nullable=False, server_default="")
    province = Column(String(128), nullable=False, server_default="")
    queries = Column(_JSON, nullable=False, default=list)

    # NULL bounds == unbounded default grid (geography comes from virtual tiles)
    sw_lat = Column(Float)
    sw_lng = Column(Float)
    ne_lat = Column(Float)
    ne_lng = Column(Float)

    cell_size_km = Column(Float, nullable=False)
    total_leads_found = Column(Integer, nullable=False, server_default=text("0"), default=0)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    @property
    def has_bounds(self) -> bool:
        return None not in (self.sw_lat, self.sw_lng, self.ne_lat, self.ne_lng)


class DiscoveryCell(Base):
    __tablename__ = "discovery_cells"

    id = Column(_ID, primary_key=True, autoincrement=True)
    grid_id = Column(_ID, ForeignKey("discovery_grids.id"), nullable=False)
    # non-owning self reference; children are looked up through the index
    parent_cell_id = Column(_ID, ForeignKey("discovery_cells.id"))

    sw_lat = Column(Float, nullable=False)
    sw_lng = Column(Float, nullable=False)
    ne_lat = Column(Float, nullable=False)
    ne_lng = Column(Float, nullable=False)

    depth = Column(Integer, nullable=False, server_default=text("0"), default=0)
    is_leaf = Column(Boolean, nullable=False, default=True)
    status = Column(String(16), nullable=False, server_default="unsearched", default="unsearched")  # unsearched|searching|searched|saturated

    result_count = Column(Integer)
    last_searched_at = Column(TIMESTAMP(timezone=True))
    query_saturation = Column(_JSON)  # [{"query": str, "count": int}, ...]
    bounds_key = Column(String(64))
    leads_found = Column(Integer)
    searching_since = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        Index("ix_discovery_cells_grid_id", "grid_id"),
        Index("ix_discovery_cells_grid_id_is_leaf", "grid_id", "is_leaf"),
        Index("ix_discovery_cells_parent_cell_id", "parent_cell_id"),
        Index("ix_discovery_cells_grid_id_bounds_key", "grid_id", "bounds_key"),
    )
