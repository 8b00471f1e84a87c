"""
Database Service - async engine and session management.

Purpose
-------
Own one AsyncEngine and session factory for the SQL-backed progress store.
Provide async context managers for read sessions and atomic transactions
plus a lightweight health check.

Responsibilities
----------------
- Initialize and dispose the engine (idempotent, lock-protected)
- `get_transaction()`: commit on success, rollback on any exception
- `get_session()`: plain session, caller controls the transaction
- `create_schema()`: create all tables registered on `Base.metadata`
- `health_check()`: `SELECT 1` liveness check

Non-Responsibilities
--------------------
- Retries (handled by `RetryPolicy`)
- Error translation to store exceptions (handled by the store)
- Migrations

Connection Pooling
------------------
- QueuePool outside tests (pool_size, max_overflow, pool_recycle, pool_timeout)
- NullPool when testing

Configuration
-------------
Defaults sourced from Config: DATABASE_URL, DATABASE_POOL_SIZE,
DATABASE_MAX_OVERFLOW, DATABASE_POOL_RECYCLE, DATABASE_POOL_TIMEOUT,
DATABASE_ECHO, TESTING. Any of them can be overridden per instance.

Usage Example
-------------
>>> database = DatabaseService("sqlite+aiosqlite:///:memory:")
>>> await database.initialize()
>>> async with database.get_transaction() as session:
...     session.add(user)
>>> await database.shutdown()
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, Pool, QueuePool, StaticPool

from academy.core.config.config import Config
from academy.core.database.base import Base
from academy.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    """Immutable view of the settings the engine was built with."""

    url: str
    echo: bool
    pool_class: Type[Pool]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


class DatabaseService:
    """
    Async engine owner for one database.

    Public API
    ----------
    - initialize() / shutdown()
    - get_session() / get_transaction()
    - create_schema()
    - health_check()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        echo: Optional[bool] = None,
        testing: Optional[bool] = None,
    ) -> None:
        self._url = url
        self._echo = echo
        self._testing = testing
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._config_snapshot: Optional[_DatabaseConfigSnapshot] = None
        self._init_lock = asyncio.Lock()

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    def _build_config_snapshot(self) -> _DatabaseConfigSnapshot:
        database_url = self._url or Config.DATABASE_URL
        if not database_url or not isinstance(database_url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )

        is_testing = self._testing if self._testing is not None else Config.is_testing()
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise each checkout sees an empty database
            pool_class: Type[Pool] = StaticPool
        else:
            pool_class = NullPool if is_testing else QueuePool

        snapshot = _DatabaseConfigSnapshot(
            url=database_url,
            echo=self._echo if self._echo is not None else Config.DATABASE_ECHO,
            pool_class=pool_class,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
        )

        logger.debug(
            "Database configuration snapshot created",
            extra={
                "url_scheme": snapshot.url_scheme,
                "pool_class": pool_class.__name__,
                "pool_size": snapshot.pool_size,
                "max_overflow": snapshot.max_overflow,
                "is_testing": is_testing,
            },
        )
        return snapshot

    async def initialize(self) -> None:
        """
        Create the engine and session factory. Idempotent.

        Raises
        ------
        DatabaseInitializationError
            If configuration is invalid or engine creation fails.
        """
        async with self._init_lock:
            if self._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            logger.info("Initializing DatabaseService")

            try:
                config = self._build_config_snapshot()
                self._config_snapshot = config

                engine_kwargs: dict[str, Any] = {
                    "echo": config.echo,
                    "poolclass": config.pool_class,
                }
                if config.pool_class is QueuePool:
                    engine_kwargs.update(
                        {
                            "pool_size": config.pool_size,
                            "max_overflow": config.max_overflow,
                            "pool_recycle": config.pool_recycle,
                            "pool_timeout": config.pool_timeout,
                        }
                    )

                self._engine = create_async_engine(config.url, **engine_kwargs)
                self._session_factory = async_sessionmaker(
                    bind=self._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )

                logger.info(
                    "DatabaseService initialized successfully",
                    extra={
                        "url_scheme": config.url_scheme,
                        "pool_class": config.pool_class.__name__,
                    },
                )

            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "config_error": isinstance(exc, DatabaseInitializationError),
                    },
                    exc_info=True,
                )
                if isinstance(exc, DatabaseInitializationError):
                    raise
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

    async def shutdown(self) -> None:
        """Dispose the engine. Safe to call more than once."""
        async with self._init_lock:
            if self._engine is None:
                logger.debug("DatabaseService not initialized; nothing to shutdown")
                return

            logger.info("Shutting down DatabaseService")
            try:
                await self._engine.dispose()
                logger.info("DatabaseService shutdown complete")
            finally:
                self._engine = None
                self._session_factory = None
                self._config_snapshot = None

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    async def create_schema(self) -> None:
        """Create every table registered on `Base.metadata` (no-op for existing ones)."""
        engine = self._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(
            "Database schema ensured",
            extra={"table_count": len(Base.metadata.tables)},
        )

    async def drop_schema(self) -> None:
        engine = self._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    # ========================================================================
    # Health Check
    # ========================================================================

    async def health_check(self) -> bool:
        """Run `SELECT 1`. Returns False instead of raising."""
        if self._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        try:
            async with self._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            return True

        except (OperationalError, DBAPIError) as exc:
            logger.warning(
                "Database health check failed",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "duration_ms": (time.perf_counter() - start) * 1000.0,
                },
            )
            return False

    # ========================================================================
    # Session & Transaction Context Managers
    # ========================================================================

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            logger.error("DatabaseService operation attempted before initialization")
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. "
                "Call initialize() during startup."
            )
        return self._engine

    def _require_session_factory(self) -> async_sessionmaker[AsyncSession]:
        self._require_engine()
        assert self._session_factory is not None
        return self._session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session without automatic commit, for reads.

        Raises
        ------
        DatabaseNotInitializedError
            If initialize() has not been called.
        """
        factory = self._require_session_factory()
        async with factory() as session:
            logger.debug("Database session opened (read-only)")
            yield session

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session wrapped in an atomic transaction.

        Commits when the block exits normally; rolls back and re-raises on
        any exception.
        """
        factory = self._require_session_factory()

        start = time.perf_counter()
        async with factory() as session:
            try:
                yield session
                await session.commit()
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

            except Exception as exc:
                await session.rollback()
                logger.debug(
                    "Database transaction rolled back",
                    extra={
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                )
                raise
