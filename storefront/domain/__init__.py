"""Domain layer.

Error taxonomy shared by the catalog stores and service.
"""

from storefront.domain.exceptions import (
    ConnectionFailureError,
    ConstraintViolationError,
    DomainError,
    InvalidGroupByError,
    InvalidQueryError,
    NotFoundError,
    TransactionClosedError,
    TransactionError,
    TransactionTimeoutError,
)

__all__ = [
    "ConnectionFailureError",
    "ConstraintViolationError",
    "DomainError",
    "InvalidGroupByError",
    "InvalidQueryError",
    "NotFoundError",
    "TransactionClosedError",
    "TransactionError",
    "TransactionTimeoutError",
]
