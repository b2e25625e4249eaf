"""Storage handle: async engine, session factory and statement cache.

One handle exists per process. ``open_storage`` creates it on first use and
hands back the same object on every later call; request handlers receive it
through the request context rather than reaching for this module.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import ThreadlineConfig
from .models.base import Base
from .store.statements import StatementCache
from .utils.logging import get_logger

logger = get_logger("threadline.database")


class Storage:
    """Process-wide storage handle shared by all requests."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine, expire_on_commit=False
        )
        self.statements = StatementCache()

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def dispose(self) -> None:
        await self.engine.dispose()


_storage: Storage | None = None


def _install_sqlite_pragmas(engine: AsyncEngine, config: ThreadlineConfig) -> None:
    """Apply WAL mode, busy timeout and sync level to every new connection."""
    pragmas = [
        "PRAGMA journal_mode=WAL",
        f"PRAGMA busy_timeout={config.db_busy_timeout}",
        f"PRAGMA synchronous={config.db_synchronous}",
    ]

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        try:
            for pragma in pragmas:
                cursor.execute(pragma)
        finally:
            cursor.close()


def create_engine(config: ThreadlineConfig) -> AsyncEngine:
    """Build the async engine for ``config.database_url``."""
    is_sqlite = config.database_url.startswith("sqlite")
    engine = create_async_engine(
        config.database_url,
        echo=config.debug,
        pool_pre_ping=True,
        connect_args={"timeout": 30} if is_sqlite else {},
    )
    if is_sqlite and config.db_wal_mode:
        _install_sqlite_pragmas(engine, config)
    return engine


def open_storage(config: ThreadlineConfig) -> Storage:
    """Get or create the process storage handle."""
    global _storage
    if _storage is not None:
        logger.debug("storage_reused")
        return _storage
    logger.info("storage_created", database_url=config.database_url)
    _storage = Storage(create_engine(config))
    return _storage


async def create_tables(storage: Storage, config: ThreadlineConfig) -> None:
    """Create the comment, config and counter tables if missing."""
    async with storage.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("tables_ready", wal_mode=config.db_wal_mode, synchronous=config.db_synchronous)


async def close_storage() -> None:
    """Dispose the process storage handle so the next open creates a new one."""
    global _storage
    if _storage is not None:
        await _storage.dispose()
        _storage = None
