"""Async SQLAlchemy engine, session factory, declarative Base, and FastAPI dependency."""


from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from visitgate.core.config import settings


def _engine_options(url: str) -> dict:
    options: dict = {"pool_pre_ping": True, "echo": False}
    if url.startswith("sqlite"):
        # aiosqlite runs the connection on its own thread; a writer waits up
        # to `timeout` seconds for another writer's lock instead of failing.
        options["connect_args"] = {"check_same_thread": False, "timeout": 5}
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)


class Base(DeclarativeBase):
    """All ORM models inherit from this base."""


async def create_schema(bind: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet (dev and tests; prod uses Alembic)."""
    import visitgate.domain  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request; commit on success, roll back on error.

    A submission touches visitor, pre-approval, visit and token rows; they
    land together or not at all.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Routes take `session: AsyncSession = SessionDep`. Function scope closes the
# transaction when the endpoint returns, before the response is sent and
# before any background task runs, so a failed commit is reported as an error.
SessionDep = Depends(get_db, scope="function")
