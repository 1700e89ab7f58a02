"""
Immutable values handed across the core boundary

ORM rows never leave a unit of work; callers get these instead.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, TYPE_CHECKING

from metalledger.core.errors import ValidationError
from metalledger.models import Order, OrderItem, OrderStatus, OrderType

if TYPE_CHECKING:
    from metalledger.core.fulfillment import FulfillmentResult


def as_uuid(value: Any, field_name: str = "id") -> uuid.UUID:
    """Coerce a UUID or its string form; anything else is a ValidationError"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"Invalid {field_name} format: {value!r}", {field_name: str(value)})


def as_decimal(value: Any, field_name: str) -> Decimal:
    """Exact decimal from int, str or Decimal; floats go through str()"""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field_name} must be a number", {field_name: str(value)})
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite", {field_name: str(value)})
    return result


@dataclass(frozen=True)
class Actor:
    """Who is asking: a user id and whether that user is an administrator"""

    user_id: uuid.UUID
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: Any) -> "Actor":
        return cls(user_id=user.id, is_admin=bool(user.is_admin))

    def can_access(self, owner_id: uuid.UUID) -> bool:
        return self.is_admin or self.user_id == owner_id


@dataclass(frozen=True)
class OrderItemSnapshot:
    id: uuid.UUID
    line_number: int
    product_id: uuid.UUID
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    fees: Decimal

    @classmethod
    def from_model(cls, item: OrderItem) -> "OrderItemSnapshot":
        return cls(
            id=item.id,
            line_number=item.line_number,
            product_id=item.product_id,
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            fees=item.fees,
        )


@dataclass(frozen=True)
class OrderSnapshot:
    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    type: OrderType
    status: OrderStatus
    currency: str
    custody_service_id: Optional[uuid.UUID]
    subtotal: Decimal
    fees: Decimal
    taxes: Decimal
    total_amount: Decimal
    notes: Optional[str]
    items: tuple[OrderItemSnapshot, ...]
    created_at: datetime
    updated_at: datetime
    fulfillment: Optional["FulfillmentResult"] = field(default=None, compare=False)

    @classmethod
    def from_model(
        cls, order: Order, fulfillment: Optional["FulfillmentResult"] = None
    ) -> "OrderSnapshot":
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            type=order.type,
            status=order.status,
            currency=order.currency,
            custody_service_id=order.custody_service_id,
            subtotal=order.subtotal,
            fees=order.fees,
            taxes=order.taxes,
            total_amount=order.total_amount,
            notes=order.notes,
            items=tuple(OrderItemSnapshot.from_model(i) for i in order.items),
            created_at=order.created_at,
            updated_at=order.updated_at,
            fulfillment=fulfillment,
        )
