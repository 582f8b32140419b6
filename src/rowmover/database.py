"""Connection pool management using asyncpg."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
from structlog import BoundLogger

from rowmover.config import DatabaseConfig
from rowmover.exceptions import DatabaseError
from utils.logging import get_logger


class DatabaseManager:
    """Owns the asyncpg pool that moves borrow connections from."""

    def __init__(
        self,
        config: DatabaseConfig,
        logger: Optional[BoundLogger] = None,
    ) -> None:
        """Initialize database manager.

        Args:
            config: Database configuration
            logger: Optional logger instance
        """
        self.config = config
        self.logger = logger or get_logger("database")
        self.pool: Optional[asyncpg.Pool] = None
        self._dsn: Optional[str] = None

    @property
    def dsn(self) -> str:
        """Get database connection DSN."""
        if self._dsn is None:
            try:
                password = self.config.get_password()
            except ValueError as e:
                raise DatabaseError(
                    str(e),
                    context={"database": self.config.name},
                ) from e

            self._dsn = (
                f"postgresql://{self.config.user}:{password}@"
                f"{self.config.host}:{self.config.port}/{self.config.name}"
            )
        return self._dsn

    async def connect(self) -> None:
        """Create connection pool."""
        try:
            self.logger.debug(
                "Creating connection pool",
                database=self.config.name,
                host=self.config.host,
                pool_size=self.config.connection_pool_size,
            )

            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=1,
                max_size=self.config.connection_pool_size,
                command_timeout=self.config.command_timeout,
                server_settings={
                    "application_name": self.config.application_name,
                },
            )

            async with self.pool.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
                self.logger.debug(
                    "Database connection established",
                    database=self.config.name,
                    version=version.split(",")[0] if version else "unknown",
                )

        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(
                f"Failed to create connection pool: {e}",
                context={"database": self.config.name, "host": self.config.host},
            ) from e

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            self.logger.debug("Closing connection pool", database=self.config.name)
            await self.pool.close()
            self.pool = None

    async def health_check(self) -> bool:
        """Check database connection health.

        Returns:
            True if healthy, False otherwise
        """
        if not self.pool:
            return False

        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            self.logger.warning("Health check failed", error=str(e))
            return False

    @asynccontextmanager
    async def acquire_connection(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """Acquire a connection from the pool.

        Yields:
            Database connection

        Raises:
            DatabaseError: If pool is not initialized
        """
        if not self.pool:
            raise DatabaseError(
                "Connection pool not initialized. Call connect() first.",
                context={"database": self.config.name},
            )

        conn = await self.pool.acquire()
        try:
            yield conn
        finally:
            await self.pool.release(conn)
