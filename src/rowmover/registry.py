"""Closed registry of source-to-archive table mappings.

Every schema, table and column name that ends up in generated SQL comes from
an ``ArchiveSpec`` defined in this module. Specs are validated when they are
constructed, so a misconfigured mapping fails at import time rather than on
the first move.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from rowmover.exceptions import ConfigurationError, InvalidIdentifierError, MissingSpecError
from rowmover.identifiers import IDENTIFIER_PATTERN, qualified_name, quote_identifier

# Positional placeholders are assigned by the statement builder only
_PLACEHOLDER_PATTERN = re.compile(r"\$\d")


def _check_identifier(name: object, context: dict[str, str]) -> None:
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.fullmatch(name):
        raise InvalidIdentifierError(name, context=context)


@dataclass(frozen=True)
class Column:
    """Projection slot copying a column of the deleted row."""

    name: str

    def render(self, param_index: int) -> str:
        return quote_identifier(self.name)


@dataclass(frozen=True)
class Expression:
    """Projection slot holding trusted SQL text, e.g. ``now()``."""

    sql: str

    def render(self, param_index: int) -> str:
        return self.sql


@dataclass(frozen=True)
class AuditParam:
    """Projection slot bound to the auditing value (e.g. "deleted by")."""

    cast: str = "text"

    def render(self, param_index: int) -> str:
        return f"${param_index}::{self.cast}"


ProjectionSlot = Union[Column, Expression, AuditParam]


@dataclass(frozen=True)
class ArchiveSpec:
    """Immutable description of one table-to-table move."""

    source_schema: str
    source_table: str
    dest_schema: str
    dest_table: str
    dest_columns: tuple[str, ...]
    projection: tuple[ProjectionSlot, ...]
    primary_key: str = "id"
    _audit_slots: int = field(init=False, repr=False, compare=False, default=0)

    def __post_init__(self) -> None:
        context = {"source": f"{self.source_schema}.{self.source_table}"}
        for name in (
            self.source_schema,
            self.source_table,
            self.dest_schema,
            self.dest_table,
            self.primary_key,
            *self.dest_columns,
        ):
            _check_identifier(name, context)

        if not self.dest_columns:
            raise ConfigurationError("Archive spec has no destination columns", context=context)
        if len(self.dest_columns) != len(self.projection):
            raise ConfigurationError(
                "Destination columns and projection differ in length",
                context={
                    **context,
                    "dest_columns": len(self.dest_columns),
                    "projection": len(self.projection),
                },
            )

        audit_slots = 0
        for slot in self.projection:
            if isinstance(slot, Column):
                _check_identifier(slot.name, context)
            elif isinstance(slot, Expression):
                if not slot.sql.strip() or _PLACEHOLDER_PATTERN.search(slot.sql):
                    raise ConfigurationError(
                        f"Projection expression must be non-empty and free of placeholders: {slot.sql!r}",
                        context=context,
                    )
            elif isinstance(slot, AuditParam):
                _check_identifier(slot.cast, context)
                audit_slots += 1
            else:
                raise ConfigurationError(
                    f"Unknown projection slot: {slot!r}",
                    context=context,
                )

        if audit_slots > 1:
            raise ConfigurationError(
                "A projection may bind at most one audit parameter",
                context={**context, "audit_slots": audit_slots},
            )
        object.__setattr__(self, "_audit_slots", audit_slots)

    @property
    def binds_audit(self) -> bool:
        """Whether the projection carries the audit parameter."""
        return self._audit_slots == 1

    @property
    def source(self) -> str:
        return qualified_name(self.source_schema, self.source_table)

    @property
    def destination(self) -> str:
        return qualified_name(self.dest_schema, self.dest_table)


class ArchiveTarget(Enum):
    """Registered moves. Only members of this enum can be archived."""

    USERS = ArchiveSpec(
        source_schema="app",
        source_table="users",
        dest_schema="archive",
        dest_table="users",
        dest_columns=(
            "id",
            "email",
            "fullName",
            "createdAt",
            "updatedAt",
            "deletedAt",
            "deletedBy",
        ),
        projection=(
            Column("id"),
            Column("email"),
            Column("fullName"),
            Column("createdAt"),
            Column("updatedAt"),
            Expression("now()"),
            AuditParam(),
        ),
    )

    API_TOKENS = ArchiveSpec(
        source_schema="app",
        source_table="api_tokens",
        dest_schema="archive",
        dest_table="api_tokens",
        dest_columns=("id", "user_id", "token_hash", "expires_at", "archived_at"),
        projection=(
            Column("id"),
            Column("user_id"),
            Column("token_hash"),
            Column("expires_at"),
            Expression("now()"),
        ),
    )

    @property
    def spec(self) -> ArchiveSpec:
        return self.value

    @classmethod
    def names(cls) -> list[str]:
        """Lower-case member names, as offered by the CLI."""
        return [member.name.lower() for member in cls]

    @classmethod
    def from_name(cls, name: str) -> "ArchiveTarget":
        """Resolve a registry member by name (case-insensitive).

        Raises:
            MissingSpecError: If no member has that name
        """
        try:
            return cls[name.upper()]
        except (KeyError, AttributeError):
            raise MissingSpecError(
                f"Unknown archive target: {name!r}",
                context={"known_targets": cls.names()},
            ) from None


def require_target(target: object) -> ArchiveTarget:
    """Return ``target`` if it is a registry member, else fail fast.

    Raises:
        MissingSpecError: If target is None or not an ArchiveTarget
    """
    if target is None:
        raise MissingSpecError("No archive target given")
    if not isinstance(target, ArchiveTarget):
        raise MissingSpecError(
            f"Archive target must be an ArchiveTarget member, got {type(target).__name__}",
        )
    return target
