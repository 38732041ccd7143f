from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def make_sqlite_url(db_path: str) -> str:
    # Use file path; for in-memory use: 'sqlite+aiosqlite://'
    if db_path.startswith("sqlite+"):
        return db_path
    return f"sqlite+aiosqlite:///{db_path}"


class LocalDatabase:
    """Engine and session factory for the client-side local storage DB."""

    def __init__(self, db_url: str):
        self.db_url = db_url
        self.engine: AsyncEngine = create_async_engine(db_url, echo=False, future=True)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine, expire_on_commit=False
        )
        self._initialized = False

    async def init(self) -> None:
        """Create tables on first use (alembic is preferred for upgrades)."""
        if self._initialized:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._initialized = True

    async def dispose(self) -> None:
        await self.engine.dispose()
