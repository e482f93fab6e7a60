"""
leadgrid.db

Single source of truth for database connectivity.

Contracts this module MUST provide (used across the repo):
- get_engine() (SQLAlchemy Engine, built lazily from DATABASE_URL)
- SessionLocal (sessionmaker bound to that engine)
- get_session() context manager: one session == one transaction

Notes:
- DATABASE_URL is expected to be provided via environment (or a .env file).
- We normalize common scheme/driver variants to reduce footguns.
- In-memory SQLite URLs (tests) share a single connection via StaticPool,
  otherwise every checkout would see a fresh, empty database.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

load_dotenv()


def _normalize_database_url(raw: str) -> str:
    """
    Normalize DATABASE_URL variants to something SQLAlchemy can reliably use.

    Normalizations:
    - postgres://  -> postgresql://
    - postgresql+psycopg:// -> postgresql+psycopg2://
    """
    url = (raw or "").strip()

    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://") :]

    if url.startswith("postgresql+psycopg://"):
        url = "postgresql+psycopg2://" + url[len("postgresql+psycopg://") :]

    return url


def _is_sqlite_memory(url: str) -> bool:
    return url.startswith("sqlite") and (url.endswith(":memory:") or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"))


_engine: Optional[Engine] = None

SessionLocal = sessionmaker(autoflush=False, autocommit=False, future=True, expire_on_commit=False)


def _build_engine(url: str) -> Engine:
    if _is_sqlite_memory(url):
        return create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, future=True, pool_pre_ping=True)


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine, creating it on first use."""
    global _engine
    if _engine is None:
        raw = os.environ.get("DATABASE_URL", "")
        if not raw:
            # Keep this loud and explicit: nothing in the grid engine works without storage.
            raise RuntimeError(
                "DATABASE_URL is not set in environment. "
                "Export it (or add it to .env) before running discovery operations."
            )
        _engine = _build_engine(_normalize_database_url(raw))
        SessionLocal.configure(bind=_engine)
    return _engine


def reset_engine() -> None:
    """Dispose the shared engine so the next get_engine() re-reads DATABASE_URL."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


@contextmanager
def get_session() -> Iterator[Session]:
    """
    Context-managed DB session.

    Usage:
        from leadgrid.db import get_session
        with get_session() as s:
            ...
    """
    get_engine()
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
