"""
Database engine and session management.
"""
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """Make sure the URL names an async driver."""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"Unsupported database driver: {drivername}; use an async driver in DATABASE__URL")

    return str(url.set(drivername=driver_map[drivername]))


def _engine_kwargs(url: str) -> dict:
    # In-memory sqlite lives per connection, so every session must share one.
    if url.startswith("sqlite") and ":memory:" in url:
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {}


_url = _build_async_url(settings.database.url)

engine = create_async_engine(
    _url,
    echo=settings.database.echo,
    future=True,
    **_engine_kwargs(_url),
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def create_tables():
    """Create every table declared on the model metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
