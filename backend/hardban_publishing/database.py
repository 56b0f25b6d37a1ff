"""
HardbanRecords Publishing API - Database Session Management
============================================================

What:  Async SQLAlchemy engine, session factory, FastAPI session dependency,
       and the row helpers that feed the mapper layer.
How:   One pooled async engine per process; each request gets its own
       session that commits on success and rolls back on error.
Who:   Services (through the `get_db_session` dependency) and Alembic.

Rows handed to mappers are plain dicts keyed by column name, so the mapper
layer never touches ORM objects or lazy loading.
"""

from typing import Any, AsyncGenerator, Dict, Mapping

from sqlalchemy import inspect as sa_inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from hardban_publishing.config import settings


def _engine_options() -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    # SQLite (local runs and tests) uses its own pool without sizing knobs
    if not settings.database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(settings.database_url, **_engine_options())

# expire_on_commit=False: attributes stay readable after commit, so a
# freshly written model can be converted to a row without another query
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for the publishing ORM models (shared metadata for Alembic)."""
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency providing one session per request.

    Commits when the handler returns, rolls back and re-raises when it
    raises, and always closes the session.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Row Helpers ───────────────────────────────────────────────────────────
def row_from_model(instance: Any) -> Dict[str, Any]:
    """ORM instance → {column name: value} (e.g. `metadata`, not `metadata_json`)."""
    mapper = sa_inspect(instance).mapper
    return {
        attr.columns[0].name: getattr(instance, attr.key)
        for attr in mapper.column_attrs
    }


def model_kwargs(model_class: Any, values: Mapping[str, Any]) -> Dict[str, Any]:
    """{column name: value} → constructor kwargs; unknown columns are dropped."""
    by_column = {attr.columns[0].name: attr.key for attr in sa_inspect(model_class).column_attrs}
    return {by_column[name]: value for name, value in values.items() if name in by_column}


def apply_row(instance: Any, values: Mapping[str, Any]) -> None:
    """Applies a partial {column name: value} update to an ORM instance."""
    for key, value in model_kwargs(type(instance), values).items():
        setattr(instance, key, value)


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def ping_database() -> bool:
    """SELECT 1 against the pool; False on any connection failure."""
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError):
        return False


async def dispose_engine() -> None:
    """Closes every pooled connection; called on application shutdown."""
    await engine.dispose()
