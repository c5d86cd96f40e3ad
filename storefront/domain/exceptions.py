"""Domain exceptions.

All errors surfaced by the catalog stores. Database driver errors are
translated into these at the store boundary so callers never have to
import SQLAlchemy to handle a failure.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Lookup Errors
# ============================================================================


class NotFoundError(DomainError):
    """Raised when a unique lookup, update or delete matched zero rows."""

    def __init__(self, entity: str, key: dict[str, Any]) -> None:
        """Initialize not found error.

        Args:
            entity: Entity name (e.g., "Product").
            key: Unique key that was looked up.
        """
        super().__init__(
            f"{entity} not found for {key}",
            details={"entity": entity, "key": key},
        )


# ============================================================================
# Constraint Errors
# ============================================================================


class ConstraintViolationError(DomainError):
    """Raised when a write would break a uniqueness, reference or value rule.

    The ``kind`` detail tells which rule was broken: ``unique``,
    ``foreign_key``, ``check``, ``validation`` or ``restrict``.
    """

    def __init__(
        self,
        entity: str,
        kind: str,
        message: str,
        fields: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize constraint violation error.

        Args:
            entity: Entity name.
            kind: Which kind of rule was violated.
            message: Human-readable error message.
            fields: Fields involved in the violation, when known.
            details: Additional context.
        """
        super().__init__(
            message,
            details={
                "entity": entity,
                "kind": kind,
                "fields": fields or [],
                **(details or {}),
            },
        )
        self.entity = entity
        self.kind = kind
        self.fields = fields or []


# ============================================================================
# Query Errors
# ============================================================================


class InvalidQueryError(DomainError):
    """Raised when query options reference unknown fields or are malformed."""

    pass


class InvalidGroupByError(InvalidQueryError):
    """Raised when a group-by request breaks the field coverage rules."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        """Initialize invalid group-by error.

        Args:
            message: Human-readable error message.
            fields: Offending fields.
        """
        super().__init__(message, details={"fields": fields or []})


# ============================================================================
# Infrastructure Errors
# ============================================================================


class ConnectionFailureError(DomainError):
    """Raised when the database is unreachable or the connection broke."""

    pass


class TransactionError(DomainError):
    """Base class for unit of work errors."""

    pass


class TransactionTimeoutError(TransactionError):
    """Raised when a transaction exceeded its max wait or total duration."""

    def __init__(self, phase: str, seconds: float) -> None:
        """Initialize transaction timeout error.

        Args:
            phase: Either "max_wait" or "timeout".
            seconds: The limit that was exceeded.
        """
        super().__init__(
            f"Transaction exceeded {phase} of {seconds}s and was rolled back",
            details={"phase": phase, "seconds": seconds},
        )


class TransactionClosedError(TransactionError):
    """Raised when an operation is issued on a finished unit of work."""

    def __init__(self) -> None:
        """Initialize transaction closed error."""
        super().__init__("Transaction is already closed")
