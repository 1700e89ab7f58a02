"""
Order fulfillment and position consolidation core

Components:
- order_state: status transitions, fulfillment on delivery
- fulfillment: per-line resolve -> mutate -> record
- position_resolver / position_mutator / transaction_recorder
- order_service / portfolio_service: placement and read access
"""

from metalledger.core.errors import (
    LedgerError,
    StateError,
    BusinessRuleError,
    ValidationError,
    NotFound,
    Forbidden,
    PersistenceError,
)

__all__ = [
    "LedgerError",
    "StateError",
    "BusinessRuleError",
    "ValidationError",
    "NotFound",
    "Forbidden",
    "PersistenceError",
]
