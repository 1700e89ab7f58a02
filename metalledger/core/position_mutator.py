"""
Position mutation

Applies one fulfillment line to a resolved position:

    resolution   order type   operation
    ----------   ----------   -----------------------------------------
    none         buy          create
    active       buy          consolidate (weighted-average cost basis)
    closed       buy          reactivate (fresh lot, old basis discarded)
    active       sell         reduce, or close when quantity reaches zero
    none/closed  sell         PositionNotFound

All arithmetic is Decimal. The weighted average is rounded half-up to the
currency's minimum price increment, once, at consolidation.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional

from sqlalchemy.orm import Session

from metalledger.core.audit import AuditEvent
from metalledger.core.errors import InsufficientQuantity, PositionNotFound, ValidationError
from metalledger.core.position_resolver import MatchKind, PositionKey, Resolution
from metalledger.models import OrderItem, OrderType, Position, PositionStatus, utcnow

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class MutationKind(str, enum.Enum):
    CREATED = "created"
    CONSOLIDATED = "consolidated"
    REACTIVATED = "reactivated"
    REDUCED = "reduced"
    CLOSED = "closed"


@dataclass(frozen=True)
class MutationOutcome:
    kind: MutationKind
    position: Position
    before_quantity: Optional[Decimal]
    before_price: Optional[Decimal]
    after_quantity: Decimal
    after_price: Decimal

    def to_event(self) -> AuditEvent:
        before = {}
        if self.before_quantity is not None:
            before = {"quantity": self.before_quantity, "purchase_price": self.before_price}
        return AuditEvent(
            action=f"position.{self.kind.value}",
            resource_type="position",
            resource_id=str(self.position.id),
            user_id=str(self.position.user_id),
            changes={
                "before": before,
                "after": {
                    "quantity": self.after_quantity,
                    "purchase_price": self.after_price,
                    "status": self.position.status,
                },
            },
            details={
                "product_id": self.position.product_id,
                "portfolio_id": self.position.portfolio_id,
                "custody_service_id": self.position.custody_service_id,
            },
        )


def weighted_average(
    quantity_a: Decimal,
    price_a: Decimal,
    quantity_b: Decimal,
    price_b: Decimal,
    increment: Decimal = Decimal("0.01"),
) -> Decimal:
    """(qa*pa + qb*pb) / (qa+qb), rounded half-up to increment"""
    total = quantity_a + quantity_b
    if total <= ZERO:
        raise ValidationError("Cannot average over a non-positive total quantity")
    average = (quantity_a * price_a + quantity_b * price_b) / total
    return average.quantize(increment, rounding=ROUND_HALF_UP)


class PositionMutator:
    """Create, consolidate, reactivate, reduce or close positions"""

    def __init__(
        self,
        price_increments: Mapping[str, Decimal] | None = None,
        default_increment: Decimal = Decimal("0.01"),
    ) -> None:
        self.price_increments = {k.upper(): v for k, v in (price_increments or {}).items()}
        self.default_increment = default_increment

    def increment_for(self, currency: str) -> Decimal:
        return self.price_increments.get((currency or "").upper(), self.default_increment)

    def create(
        self, session: Session, key: PositionKey, line: OrderItem, now: datetime
    ) -> MutationOutcome:
        position = Position(
            user_id=key.user_id,
            product_id=key.product_id,
            portfolio_id=key.portfolio_id,
            custody_service_id=key.custody_service_id,
            quantity=line.quantity,
            purchase_price=line.unit_price,
            market_price=line.unit_price,
            status=PositionStatus.ACTIVE,
            purchase_date=now,
        )
        session.add(position)
        session.flush()
        logger.info(f"Created position {position.id}: {line.quantity} @ {line.unit_price}")
        return MutationOutcome(
            MutationKind.CREATED, position, None, None, position.quantity, position.purchase_price
        )

    def consolidate(self, position: Position, line: OrderItem, currency: str) -> MutationOutcome:
        before_quantity, before_price = position.quantity, position.purchase_price
        new_quantity = before_quantity + line.quantity
        new_price = weighted_average(
            before_quantity,
            before_price,
            line.quantity,
            line.unit_price,
            self.increment_for(currency),
        )
        position.quantity = new_quantity
        position.purchase_price = new_price
        position.market_price = new_price
        logger.info(
            f"Consolidated position {position.id}: {before_quantity} @ {before_price} "
            f"-> {new_quantity} @ {new_price}"
        )
        return MutationOutcome(
            MutationKind.CONSOLIDATED, position, before_quantity, before_price, new_quantity, new_price
        )

    def reactivate(self, position: Position, line: OrderItem, now: datetime) -> MutationOutcome:
        before_quantity, before_price = position.quantity, position.purchase_price
        position.quantity = line.quantity
        position.purchase_price = line.unit_price
        position.market_price = line.unit_price
        position.status = PositionStatus.ACTIVE
        position.purchase_date = now
        position.closed_date = None
        logger.info(f"Reactivated position {position.id}: {line.quantity} @ {line.unit_price}")
        return MutationOutcome(
            MutationKind.REACTIVATED,
            position,
            before_quantity,
            before_price,
            position.quantity,
            position.purchase_price,
        )

    def reduce(self, position: Position, line: OrderItem, now: datetime) -> MutationOutcome:
        before_quantity = position.quantity
        if before_quantity < line.quantity:
            raise InsufficientQuantity(position.id, before_quantity, line.quantity)

        new_quantity = before_quantity - line.quantity
        if new_quantity == ZERO:
            position.quantity = ZERO
            position.status = PositionStatus.CLOSED
            position.closed_date = now
            kind = MutationKind.CLOSED
        else:
            position.quantity = new_quantity
            kind = MutationKind.REDUCED

        logger.info(f"{kind.value.capitalize()} position {position.id}: {before_quantity} -> {new_quantity}")
        return MutationOutcome(
            kind, position, before_quantity, position.purchase_price, new_quantity, position.purchase_price
        )

    def apply(
        self,
        session: Session,
        resolution: Resolution,
        key: PositionKey,
        order_type: OrderType,
        line: OrderItem,
        currency: str,
        now: datetime | None = None,
    ) -> MutationOutcome:
        """Select and run the operation for a resolution and order type"""
        now = now or utcnow()

        if order_type is OrderType.BUY:
            if resolution.kind is MatchKind.ACTIVE:
                return self.consolidate(resolution.position, line, currency)
            if resolution.kind is MatchKind.CLOSED:
                return self.reactivate(resolution.position, line, now)
            return self.create(session, key, line, now)

        # Sells never create positions
        if resolution.kind is not MatchKind.ACTIVE:
            raise PositionNotFound(key.product_id, key.portfolio_id)
        return self.reduce(resolution.position, line, now)
