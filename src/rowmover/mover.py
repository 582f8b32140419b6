"""Moves rows from source tables into their archive tables."""

import time
from collections.abc import AsyncGenerator, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Optional

import asyncpg
import structlog

from rowmover.config import MAX_CHUNK_SIZE, MoverDefaults, RowMoverConfig, TransactionScope
from rowmover.database import DatabaseManager
from rowmover.exceptions import DatabaseError, PersistenceError
from rowmover.metrics import MoverMetrics
from rowmover.registry import ArchiveTarget, require_target
from rowmover.statements import MoveStatement, StatementBuilder
from rowmover.transaction_manager import PERSISTENCE_ERRORS, TransactionManager
from utils.logging import get_logger


def parse_row_count(status: str) -> int:
    """Parse the row count from an INSERT command tag ("INSERT 0 <count>").

    Raises:
        PersistenceError: If the tag is not an INSERT tag
    """
    if status and status.startswith("INSERT"):
        try:
            return int(status.split()[-1])
        except (ValueError, IndexError):
            pass
    raise PersistenceError(
        f"Unexpected command status from move statement: {status!r}",
        context={"status": status},
    )


class RowMover:
    """Archives rows of registered tables with one DELETE ... RETURNING / INSERT statement.

    ``archive_one`` moves a single row. ``archive_many`` splits ids into
    chunks and moves each chunk with one statement. Every call runs inside a
    transaction; for bulk calls ``defaults.transaction_scope`` decides whether
    that transaction spans all chunks (``per_call``) or each chunk
    (``per_chunk``). Failures are never retried.
    """

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        defaults: Optional[MoverDefaults] = None,
        metrics: Optional[MoverMetrics] = None,
        statement_builder: Optional[StatementBuilder] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """Initialize the row mover.

        Args:
            db_manager: Pool owner; optional when every call passes a connection
            defaults: Chunk size, transaction scope and statement timeout
            metrics: Optional Prometheus metrics
            statement_builder: Optional builder (shares its statement cache)
            logger: Optional logger instance
        """
        self.db_manager = db_manager
        self.defaults = defaults or MoverDefaults()
        self.metrics = metrics
        self.logger = logger or get_logger("mover")
        self.statement_builder = statement_builder or StatementBuilder(logger=self.logger)

        # Render every registered move up front so misconfiguration fails at start-up
        self.statement_builder.preflight()

    @classmethod
    def from_config(
        cls,
        config: RowMoverConfig,
        metrics: Optional[MoverMetrics] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> "RowMover":
        """Build a mover (and its DatabaseManager) from loaded configuration."""
        logger = logger or get_logger("mover")
        if metrics is None and config.monitoring.metrics_enabled:
            metrics = MoverMetrics(logger=logger)
            metrics.start_metrics_server(port=config.monitoring.metrics_port)
        return cls(
            db_manager=DatabaseManager(config.database, logger=logger),
            defaults=config.defaults,
            metrics=metrics,
            logger=logger,
        )

    async def start(self) -> None:
        """Open the connection pool."""
        if self.db_manager is None:
            raise DatabaseError("RowMover has no DatabaseManager to connect")
        await self.db_manager.connect()

    async def close(self) -> None:
        """Close the connection pool."""
        if self.db_manager is not None:
            await self.db_manager.disconnect()

    async def __aenter__(self) -> "RowMover":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def archive_one(
        self,
        target: ArchiveTarget,
        row_id: int,
        audited_by: Optional[str] = None,
        *,
        connection: Optional[asyncpg.Connection] = None,
    ) -> int:
        """Move one row by primary key.

        Args:
            target: Registered move
            row_id: Primary key of the row to move
            audited_by: Auditing value; ignored when the target binds none
            connection: Optional caller-owned connection to run on

        Returns:
            Rows moved: 0 if the id does not exist, else 1

        Raises:
            MissingSpecError: If target is not a registry member
            PersistenceError: If the statement fails (transaction rolled back)
        """
        target = require_target(target)
        statement = self.statement_builder.single(target)
        name = target.name.lower()
        started = time.monotonic()

        try:
            async with self._connection(connection) as conn:
                async with self._transaction(conn):
                    moved = await self._execute(conn, statement, [row_id], audited_by, "single")
        except PersistenceError as e:
            self._record_failure(name, e)
            raise

        duration = time.monotonic() - started
        if self.metrics:
            self.metrics.record_statement(name, "single", moved)
            self.metrics.record_duration(name, "single", duration)
        self.logger.info(
            "Row archived" if moved else "Row not found, nothing archived",
            target=name,
            row_id=row_id,
            rows_moved=moved,
            duration_seconds=round(duration, 6),
        )
        return moved

    async def archive_many(
        self,
        target: ArchiveTarget,
        ids: Sequence[int],
        audited_by: Optional[str] = None,
        chunk_size: Optional[int] = None,
        *,
        connection: Optional[asyncpg.Connection] = None,
    ) -> int:
        """Move many rows, chunk by chunk.

        Args:
            target: Registered move
            ids: Primary keys, bound in the given order
            audited_by: Auditing value; ignored when the target binds none
            chunk_size: Ids per statement; None or <= 0 uses the configured default
            connection: Optional caller-owned connection to run on

        Returns:
            Total rows moved across all chunks (0 for an empty id list)

        Raises:
            MissingSpecError: If target is not a registry member
            PersistenceError: If a chunk fails. Under ``per_call`` scope nothing
                is committed; under ``per_chunk`` earlier chunks stay committed
                and their count is in the error context as ``rows_committed``.
        """
        target = require_target(target)
        ids = list(ids)
        name = target.name.lower()

        if not ids:
            self.logger.debug("Empty id batch, nothing to archive", target=name)
            return 0

        size = chunk_size if chunk_size and chunk_size > 0 else self.defaults.chunk_size
        if size > MAX_CHUNK_SIZE:
            self.logger.warning(
                "Chunk size above driver argument limit, clamping",
                target=name,
                requested=size,
                chunk_size=MAX_CHUNK_SIZE,
            )
            size = MAX_CHUNK_SIZE
        chunks = [ids[start : start + size] for start in range(0, len(ids), size)]
        scope = self.defaults.transaction_scope
        started = time.monotonic()
        committed = 0

        try:
            async with self._connection(connection) as conn:
                if scope is TransactionScope.PER_CALL:
                    async with self._transaction(conn):
                        counts = []
                        for chunk in chunks:
                            counts.append(
                                await self._execute_chunk(conn, target, chunk, audited_by)
                            )
                    self._record_committed(name, counts)
                    committed = sum(counts)
                else:
                    for chunk in chunks:
                        async with self._transaction(conn):
                            moved = await self._execute_chunk(conn, target, chunk, audited_by)
                        self._record_committed(name, [moved])
                        committed += moved
        except PersistenceError as e:
            e.context.update(
                {
                    "target": name,
                    "transaction_scope": scope.value,
                    "rows_committed": committed,
                }
            )
            self._record_failure(name, e)
            raise

        duration = time.monotonic() - started
        if self.metrics:
            self.metrics.record_duration(name, "bulk", duration)
        self.logger.info(
            "Rows archived",
            target=name,
            ids=len(ids),
            chunks=len(chunks),
            chunk_size=size,
            transaction_scope=scope.value,
            rows_moved=committed,
            duration_seconds=round(duration, 6),
        )
        return committed

    async def _execute_chunk(
        self,
        conn: asyncpg.Connection,
        target: ArchiveTarget,
        chunk: list[int],
        audited_by: Optional[str],
    ) -> int:
        statement = self.statement_builder.bulk(target, len(chunk))
        return await self._execute(conn, statement, chunk, audited_by, "bulk")

    async def _execute(
        self,
        conn: asyncpg.Connection,
        statement: MoveStatement,
        ids: Sequence[int],
        audited_by: Optional[str],
        mode: str,
    ) -> int:
        status = await conn.execute(statement.sql, *statement.bind(ids, audited_by))
        moved = parse_row_count(status)
        self.logger.debug(
            "Move statement executed",
            target=statement.target.name.lower(),
            mode=mode,
            ids=len(ids),
            rows_moved=moved,
        )
        return moved

    def _transaction(self, conn: asyncpg.Connection):
        return TransactionManager(
            conn,
            timeout_seconds=self.defaults.statement_timeout_seconds,
            logger=self.logger,
        ).transaction()

    @asynccontextmanager
    async def _connection(
        self, connection: Optional[asyncpg.Connection]
    ) -> AsyncGenerator[asyncpg.Connection, None]:
        """Use the caller's connection, or borrow one from the pool."""
        if connection is not None:
            yield connection
            return

        if self.db_manager is None:
            raise DatabaseError("No connection given and no DatabaseManager configured")

        async with AsyncExitStack() as stack:
            try:
                conn = await stack.enter_async_context(self.db_manager.acquire_connection())
            except PERSISTENCE_ERRORS as e:
                raise PersistenceError(
                    f"Failed to acquire connection: {e}",
                    context={"database": self.db_manager.config.name},
                ) from e
            yield conn

    def _record_committed(self, target: str, counts: list[int]) -> None:
        """Count statements and rows once their transaction has committed."""
        if self.metrics:
            for moved in counts:
                self.metrics.record_statement(target, "bulk", moved)

    def _record_failure(self, target: str, error: PersistenceError) -> None:
        cause = error.__cause__
        error_type = type(cause).__name__ if cause is not None else type(error).__name__
        if self.metrics:
            self.metrics.record_error(target, error_type)
        self.logger.error(
            "Archive move failed",
            target=target,
            error=error.message,
            error_type=error_type,
            sqlstate=getattr(cause, "sqlstate", None),
        )
