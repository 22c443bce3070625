"""
Async SQLAlchemy engine and sessions for the provider store.
"""
from pathlib import Path
from typing import Any, Dict

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from airouter.core.config import settings

Base = declarative_base()


def _is_sqlite(url: URL) -> bool:
    return url.get_backend_name() == "sqlite"


def engine_options(url: URL) -> Dict[str, Any]:
    """Pooling options for ``url``: no pool for SQLite, a bounded pool otherwise."""
    if _is_sqlite(url):
        return {"poolclass": NullPool, "connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


database_url = make_url(settings.database_url)

engine = create_async_engine(
    database_url,
    echo=settings.app_debug,
    **engine_options(database_url)
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


async def init_db() -> None:
    """Create the provider tables (and the SQLite directory) if missing."""
    import airouter.models.provider  # noqa: F401

    if _is_sqlite(database_url) and database_url.database not in (None, "", ":memory:"):
        Path(database_url.database).parent.mkdir(parents=True, exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
