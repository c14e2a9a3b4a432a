"""Database package - async SQLAlchemy engine, session factory, Base."""
from visitgate.db.base import Base, SessionDep, async_session_factory, create_schema, engine, get_db

__all__ = ["Base", "SessionDep", "async_session_factory", "create_schema", "engine", "get_db"]
