"""Async database engine and session management."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from smartlink.config import Settings
from smartlink.models.tables import Base


class Database:
    """Owns the engine + session factory.

    Created by the app lifespan and handed to the store explicitly; there is
    no module-level engine.
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 5,
        pool_timeout: float = 5.0,
    ):
        engine_kwargs: dict = {"echo": echo, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
            )
        if url.startswith("postgresql+asyncpg"):
            engine_kwargs["connect_args"] = {"timeout": pool_timeout}

        self.engine = create_async_engine(url, **engine_kwargs)
        self._session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout_seconds,
        )

    def session(self) -> AsyncSession:
        return self._session_maker()

    async def create_all(self):
        """Create tables in place. For tests and local runs only."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()
