"""
Error taxonomy for the order and position ledger

Every error raised by the core derives from LedgerError and carries:
- category: state, business, not_found, forbidden, validation, persistence
- http_status: what the HTTP layer answers with
- retryable: True only for transient persistence faults

State and business errors are final for the request. Persistence errors
(lock timeouts, dropped connections) are retried by the caller with backoff.
"""

from typing import Any, Optional


class LedgerError(Exception):
    """Base exception for all ledger operations"""

    category = "internal"
    http_status = 500
    retryable = False

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": self.code,
            "category": self.category,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


# ============================================================================
# STATE ERRORS
# ============================================================================


class StateError(LedgerError):
    """Invalid order status transition"""

    category = "state"
    http_status = 409


class AlreadyTerminal(StateError):
    def __init__(self, order_id: Any) -> None:
        super().__init__(
            f"Order {order_id} is already completed and cannot be processed further",
            {"order_id": str(order_id)},
        )


class AlreadyCancelled(StateError):
    def __init__(self, order_id: Any) -> None:
        super().__init__(
            f"Order {order_id} is cancelled and cannot be processed",
            {"order_id": str(order_id)},
        )


class UnknownStatus(StateError):
    def __init__(self, status: Any) -> None:
        super().__init__(
            f"Invalid order status '{status}' for further processing",
            {"status": str(status)},
        )


class InvalidTransition(StateError):
    def __init__(self, message: str, order_id: Any = None, status: Any = None) -> None:
        details = {}
        if order_id is not None:
            details["order_id"] = str(order_id)
        if status is not None:
            details["status"] = str(getattr(status, "value", status))
        super().__init__(message, details)


class AlreadyFulfilled(StateError):
    """Fulfillment requested for an order that is not awaiting delivery"""

    def __init__(self, order_id: Any, status: Any) -> None:
        super().__init__(
            f"Order {order_id} cannot be fulfilled from status "
            f"'{getattr(status, 'value', status)}'",
            {"order_id": str(order_id), "status": str(getattr(status, "value", status))},
        )


class OrderLocked(StateError):
    """Order items are immutable once the order leaves pending"""

    def __init__(self, order_id: Any, status: Any) -> None:
        super().__init__(
            f"Order {order_id} items cannot change in status "
            f"'{getattr(status, 'value', status)}'",
            {"order_id": str(order_id), "status": str(getattr(status, "value", status))},
        )


# ============================================================================
# BUSINESS-RULE ERRORS
# ============================================================================


class BusinessRuleError(LedgerError):
    category = "business"
    http_status = 422


class InsufficientQuantity(BusinessRuleError):
    def __init__(self, position_id: Any, available: Any, requested: Any) -> None:
        super().__init__(
            f"Position {position_id} holds {available}, cannot sell {requested}",
            {
                "position_id": str(position_id),
                "available": str(available),
                "requested": str(requested),
            },
        )


class PositionNotFound(BusinessRuleError):
    def __init__(self, product_id: Any, portfolio_id: Any) -> None:
        super().__init__(
            f"No active position for product {product_id} in portfolio {portfolio_id}",
            {"product_id": str(product_id), "portfolio_id": str(portfolio_id)},
        )


# ============================================================================
# REQUEST ERRORS
# ============================================================================


class ValidationError(LedgerError):
    category = "validation"
    http_status = 400


class NotFound(LedgerError):
    category = "not_found"
    http_status = 404


class OrderNotFound(NotFound):
    def __init__(self, order_id: Any) -> None:
        super().__init__(f"Order not found: {order_id}", {"order_id": str(order_id)})


class Forbidden(LedgerError):
    category = "forbidden"
    http_status = 403


# ============================================================================
# PERSISTENCE ERRORS
# ============================================================================


class PersistenceError(LedgerError):
    """Transient store failure; safe to retry the whole operation"""

    category = "persistence"
    http_status = 503
    retryable = True


class LockTimeout(PersistenceError):
    """A row or database lock could not be acquired in time"""
