"""Transaction scope for move statements."""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
import structlog

from rowmover.exceptions import PersistenceError
from utils.logging import get_logger

# Driver failures that abort a move: server errors, client/protocol errors,
# and dropped sockets.
PERSISTENCE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class TransactionManager:
    """Runs a block inside one database transaction with a server-side deadline."""

    def __init__(
        self,
        connection: asyncpg.Connection,
        timeout_seconds: int = 1800,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """Initialize transaction manager.

        Args:
            connection: Database connection
            timeout_seconds: statement_timeout for the transaction, 0 disables it
            logger: Optional logger instance
        """
        self.connection = connection
        self.timeout_seconds = timeout_seconds
        self.logger = logger or get_logger("transaction_manager")

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """Open a transaction; commit on success, roll back on any exception.

        Yields:
            Database connection in transaction

        Raises:
            PersistenceError: If the database or driver fails inside the block
        """
        started = time.monotonic()

        try:
            async with self.connection.transaction():
                if self.timeout_seconds:
                    # SET does not accept bind parameters; the value is a validated int
                    await self.connection.execute(
                        f"SET LOCAL statement_timeout = {int(self.timeout_seconds) * 1000}"
                    )

                self.logger.debug(
                    "Transaction started",
                    timeout_seconds=self.timeout_seconds,
                )

                yield self.connection

            self.logger.debug(
                "Transaction committed",
                duration_seconds=round(time.monotonic() - started, 6),
            )

        except PERSISTENCE_ERRORS as e:
            sqlstate = getattr(e, "sqlstate", None)
            self.logger.error(
                "Transaction rolled back",
                error=str(e),
                error_code=sqlstate,
            )
            raise PersistenceError(
                f"Transaction failed: {e}",
                context={"error_code": sqlstate, "error_type": type(e).__name__},
            ) from e
