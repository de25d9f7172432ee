"""
Domain errors raised by the pricing, ledger and order lifecycle services.

Every error carries an HTTP status and a stable error code so the API layer
can render it without inspecting the message. Client errors are never
retried; StorageError marks a unit of work that was rolled back completely
and may be retried as a whole.
"""
from typing import Dict, Optional


class OrderHubError(Exception):
    """Base exception for service-level errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict:
        return {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class InvalidRequestError(OrderHubError):
    """Malformed or empty input (no items, bad quantities, inactive product)."""
    status_code = 400
    error_code = "INVALID_REQUEST"


class InvalidAmountError(InvalidRequestError):
    """Cashback amount must be strictly positive."""
    error_code = "INVALID_CASHBACK_AMOUNT"


class InsufficientBalanceError(OrderHubError):
    """Debit would drive a cashback wallet below zero."""
    status_code = 400
    error_code = "INSUFFICIENT_CASHBACK_BALANCE"


class NotFoundError(OrderHubError):
    """Referenced order, product or condition does not exist."""
    status_code = 404
    error_code = "NOT_FOUND"


class PermissionDeniedError(OrderHubError):
    """Acting organization may not perform the change."""
    status_code = 403
    error_code = "FORBIDDEN"


class InvalidTransitionError(OrderHubError):
    """Order status change is not an edge of the transition table."""
    status_code = 409
    error_code = "INVALID_STATUS_TRANSITION"


class StorageError(OrderHubError):
    """Database failure inside an atomic unit; the unit was rolled back."""
    status_code = 503
    error_code = "STORAGE_ERROR"
    retryable = True
