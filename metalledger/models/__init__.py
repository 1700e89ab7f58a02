"""
SQLAlchemy ORM models package

Provides data models for all database tables:
- Users: User
- Catalog: Metal, Product, Custodian, CustodyService
- Holdings: Portfolio, Position
- Ledger: Transaction
- Orders: Order, OrderItem
"""

from metalledger.models.base import Base, TimestampMixin, utcnow
from metalledger.models.user import User, UserRole
from metalledger.models.catalog import (
    Metal,
    Product,
    Custodian,
    CustodyService,
    WeightUnit,
    PaymentFrequency,
)
from metalledger.models.portfolio import Portfolio, Position, PositionStatus
from metalledger.models.transaction import Transaction, TransactionType
from metalledger.models.order import Order, OrderItem, OrderStatus, OrderType

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    "User",
    "UserRole",
    "Metal",
    "Product",
    "Custodian",
    "CustodyService",
    "WeightUnit",
    "PaymentFrequency",
    "Portfolio",
    "Position",
    "PositionStatus",
    "Transaction",
    "TransactionType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderType",
]
