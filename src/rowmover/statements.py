"""Builds the single-statement move (DELETE ... RETURNING feeding INSERT ... SELECT)."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from rowmover.identifiers import quote_identifier
from rowmover.registry import ArchiveTarget, require_target
from utils.logging import get_logger


@dataclass(frozen=True)
class MoveStatement:
    """Rendered move statement and the shape of its parameters."""

    target: ArchiveTarget
    sql: str
    id_count: int
    binds_audit: bool

    @property
    def parameter_count(self) -> int:
        return self.id_count + (1 if self.binds_audit else 0)

    def bind(self, ids: Sequence[int], audited_by: Optional[str] = None) -> tuple[Any, ...]:
        """Arrange query arguments: the ids in order, then the audit value if bound.

        Args:
            ids: Primary keys, exactly ``id_count`` of them
            audited_by: Auditing value, ignored when the projection has no audit slot

        Returns:
            Positional arguments for asyncpg

        Raises:
            ValueError: If the number of ids does not match the statement
        """
        if len(ids) != self.id_count:
            raise ValueError(
                f"Statement expects {self.id_count} id(s), got {len(ids)}"
            )
        if self.binds_audit:
            return (*ids, audited_by)
        return tuple(ids)


class StatementBuilder:
    """Renders move statements for registry members."""

    def __init__(self, logger: Optional[structlog.BoundLogger] = None) -> None:
        """Initialize statement builder.

        Args:
            logger: Optional logger instance
        """
        self.logger = logger or get_logger("statements")
        self._cache: dict[tuple[ArchiveTarget, int, bool], MoveStatement] = {}

    def single(self, target: ArchiveTarget) -> MoveStatement:
        """Statement moving one row by primary key (``WHERE pk = $1``)."""
        return self._get(require_target(target), 1, single=True)

    def bulk(self, target: ArchiveTarget, count: int) -> MoveStatement:
        """Statement moving ``count`` rows (``WHERE pk IN ($1, ..., $count)``).

        Raises:
            ValueError: If count is less than 1
        """
        target = require_target(target)
        if count < 1:
            raise ValueError(f"Bulk statement needs at least one id, got {count}")
        return self._get(target, count, single=False)

    def preflight(self) -> list[MoveStatement]:
        """Render the single-row statement of every registry member.

        Called once at start-up so that a broken mapping surfaces before any move.
        """
        statements = [self.single(target) for target in ArchiveTarget]
        self.logger.debug("Registry preflight complete", targets=len(statements))
        return statements

    def _get(self, target: ArchiveTarget, count: int, single: bool) -> MoveStatement:
        key = (target, count, single)
        statement = self._cache.get(key)
        if statement is None:
            statement = self._render(target, count, single)
            self._cache[key] = statement
        return statement

    def _render(self, target: ArchiveTarget, count: int, single: bool) -> MoveStatement:
        spec = target.spec
        pk_col = quote_identifier(spec.primary_key)

        if single:
            condition = f"{pk_col} = $1"
        else:
            placeholders = ", ".join(f"${i}" for i in range(1, count + 1))
            condition = f"{pk_col} IN ({placeholders})"

        columns = ", ".join(quote_identifier(col) for col in spec.dest_columns)
        audit_index = count + 1
        projection = ", ".join(slot.render(audit_index) for slot in spec.projection)

        sql = (
            f"WITH moved AS ("
            f"DELETE FROM {spec.source} WHERE {condition} RETURNING *"
            f") "
            f"INSERT INTO {spec.destination} ({columns}) "
            f"SELECT {projection} FROM moved"
        )

        self.logger.debug(
            "Move statement rendered",
            target=target.name.lower(),
            id_count=count,
            binds_audit=spec.binds_audit,
        )
        return MoveStatement(
            target=target,
            sql=sql,
            id_count=count,
            binds_audit=spec.binds_audit,
        )
