"""Exception hierarchy for row moves."""

from typing import Any, Optional


class RowMoverError(Exception):
    """Base exception for all row mover errors."""

    def __init__(
        self,
        message: str,
        *,
        correlation_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize row mover error.

        Args:
            message: Error message
            correlation_id: Optional correlation ID for tracing
            context: Optional context dictionary with additional details
        """
        super().__init__(message)
        self.message = message
        self.correlation_id = correlation_id
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message."""
        parts = [self.message]
        if self.correlation_id:
            parts.append(f"[correlation_id={self.correlation_id}]")
        if self.context:
            parts.append(f"[context={self.context}]")
        return " ".join(parts)


class ConfigurationError(RowMoverError):
    """Configuration-related errors."""

    pass


class InvalidIdentifierError(ConfigurationError):
    """A schema, table or column name failed the identifier grammar."""

    def __init__(self, identifier: Any, *, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            f"Invalid SQL identifier: {identifier!r}. "
            "Only letters, digits, and underscores are allowed.",
            context=context,
        )
        self.identifier = identifier


class MissingSpecError(RowMoverError):
    """No archive target was given, or the target is not a registry member."""

    pass


class DatabaseError(RowMoverError):
    """Database-related errors."""

    pass


class PersistenceError(DatabaseError):
    """Statement execution failed and the enclosing transaction was rolled back."""

    pass
