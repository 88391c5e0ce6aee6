"""
Error taxonomy for inventory workflows.

Every failure raised by the services is a ``BackofficeError`` tagged with an
``ErrorKind``. Callers branch on ``err.kind`` rather than on the concrete
subclass:

    try:
        ship_transfer(tenant_id, user_id, transfer_id)
    except BackofficeError as err:
        match err.kind:
            case ErrorKind.VALIDATION | ErrorKind.NOT_FOUND:
                ...
            case ErrorKind.BUSINESS_RULE:
                ...

KINDS:
- USAGE: the caller broke a precondition (programming error, never user input)
- VALIDATION: rejected input naming the offending entity and figures
- NOT_FOUND: referenced entity does not exist inside the tenant
- BUSINESS_RULE: insufficient stock, invalid state transition
- CONSISTENCY: internal invariant broken; indicates a bug

Any of these raised inside a unit of work rolls the whole transaction back.
"""
from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    USAGE = "USAGE"
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    BUSINESS_RULE = "BUSINESS_RULE"
    CONSISTENCY = "CONSISTENCY"


class BackofficeError(Exception):
    """Base class for all service-layer failures."""

    kind: ErrorKind = ErrorKind.CONSISTENCY

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class UsageError(BackofficeError):
    """Precondition violated by the calling code."""

    kind = ErrorKind.USAGE


class ValidationError(BackofficeError):
    """400-level input problem."""

    kind = ErrorKind.VALIDATION


class NotFoundError(ValidationError):
    kind = ErrorKind.NOT_FOUND


class BusinessRuleError(BackofficeError):
    """Request is well-formed but not allowed in the current state."""

    kind = ErrorKind.BUSINESS_RULE


class InsufficientStockError(BusinessRuleError):
    pass


class InvalidTransitionError(BusinessRuleError):
    pass


class ConsistencyError(BackofficeError):
    """Internal invariant broken; the operation is rolled back."""

    kind = ErrorKind.CONSISTENCY
