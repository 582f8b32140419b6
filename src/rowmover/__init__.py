"""Row mover - archive rows of registered PostgreSQL tables with one atomic statement."""

from rowmover.exceptions import (
    ConfigurationError,
    DatabaseError,
    InvalidIdentifierError,
    MissingSpecError,
    PersistenceError,
    RowMoverError,
)
from rowmover.identifiers import quote_identifier
from rowmover.mover import RowMover
from rowmover.registry import ArchiveSpec, ArchiveTarget, AuditParam, Column, Expression

__version__ = "0.1.0"

__all__ = [
    "ArchiveSpec",
    "ArchiveTarget",
    "AuditParam",
    "Column",
    "ConfigurationError",
    "DatabaseError",
    "Expression",
    "InvalidIdentifierError",
    "MissingSpecError",
    "PersistenceError",
    "RowMover",
    "RowMoverError",
    "quote_identifier",
]
