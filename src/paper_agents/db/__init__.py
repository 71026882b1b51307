"""Database layer — engine, session factory, ORM base, repository."""

from paper_agents.db.base import Base
from paper_agents.db.engine import create_db_engine, init_schema, make_session_factory
from paper_agents.db.repository import SqlAgentRepository

__all__ = ["Base", "SqlAgentRepository", "create_db_engine", "init_schema", "make_session_factory"]
