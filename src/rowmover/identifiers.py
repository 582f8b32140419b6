"""Identifier validation and quoting for generated SQL."""

import re
from typing import Any

from rowmover.exceptions import InvalidIdentifierError

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def quote_identifier(name: Any) -> str:
    """Validate and double-quote a PostgreSQL identifier.

    Only schema, table and column names go through here. Values are always
    bound as parameters.

    Args:
        name: Candidate identifier

    Returns:
        Quoted identifier (e.g., '"fullName"')

    Raises:
        InvalidIdentifierError: If the name is not a simple identifier
    """
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.fullmatch(name):
        raise InvalidIdentifierError(name)

    # The grammar excludes quote characters, so no escaping is needed
    return f'"{name}"'


def qualified_name(schema: str, table: str) -> str:
    """Return a quoted schema-qualified table name ('"schema"."table"')."""
    return f"{quote_identifier(schema)}.{quote_identifier(table)}"
