"""Database engine and session management."""

from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from paper_agents.db.base import Base


def _ensure_psycopg_driver(url: str) -> str:
    """Rewrite postgresql:// to postgresql+psycopg:// for psycopg v3."""
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def create_db_engine(url: str, **kwargs) -> Engine:
    """Create an engine for *url* (psycopg v3 driver for Postgres)."""
    return create_engine(_ensure_psycopg_driver(url), **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create every table registered on Base.metadata (idempotent)."""
    import paper_agents.db.tables  # noqa: F401 — register tables

    if engine.dialect.name == "postgresql":
        from paper_agents.db.tables.agents import SCHEMA

        with engine.begin() as conn:
            conn.exec_driver_sql(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}")
    Base.metadata.create_all(engine)
