"""
Order service - placement, reads, edits and administrative deletion

Status changes are not made here; see OrderStateMachine.
"""

import logging
import math
import uuid
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from metalledger.core.calculation import CalculationService
from metalledger.core.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    OrderLocked,
    OrderNotFound,
    ValidationError,
)
from metalledger.core.snapshots import Actor, OrderSnapshot, as_decimal, as_uuid
from metalledger.models import (
    CustodyService,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    Product,
    User,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Decimal places the order_items columns store
QUANTITY_PLACES = 4
MONEY_PLACES = 2


def parse_order_type(value: Any) -> OrderType:
    try:
        return OrderType(str(value).lower())
    except ValueError:
        raise ValidationError(
            f"Invalid order type: {value}. Must be BUY or SELL", {"type": str(value)}
        )


def parse_order_status(value: Any) -> OrderStatus:
    try:
        return OrderStatus(str(value).lower())
    except ValueError:
        raise ValidationError(f"Invalid order status: {value}", {"status": str(value)})


class OrderService:
    """CRUD around orders; every operation is its own unit of work"""

    def __init__(
        self,
        db: Any,
        default_currency: str = "CHF",
        page_size: int = 20,
        max_page_size: int = 100,
        calculator: Optional[CalculationService] = None,
    ) -> None:
        self.db = db
        self.calculator = calculator or CalculationService()
        self.default_currency = default_currency.upper()
        self.page_size = page_size
        self.max_page_size = max_page_size

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load(session: Session, order_id: uuid.UUID, for_update: bool = False) -> Order:
        order = session.get(Order, order_id, with_for_update=for_update or None)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    @staticmethod
    def _check_scale(value: Decimal, places: int, field: str, index: int) -> None:
        # Trailing zeros are fine; digits the column would drop are not
        if value.normalize().as_tuple().exponent < -places:
            raise ValidationError(
                f"Item {index}: {field} allows at most {places} decimal places",
                {"line_number": index, field: str(value)},
            )

    def _build_items(self, session: Session, raw_items: Iterable[dict], currency: str) -> list[OrderItem]:
        """Validate raw line dicts against the catalog and price them"""
        raw_items = list(raw_items or [])
        if not raw_items:
            raise ValidationError("Order must contain at least one item")

        items = []
        for index, raw in enumerate(raw_items, start=1):
            if not isinstance(raw, dict):
                raise ValidationError(f"Item {index} must be an object")

            product_id = as_uuid(raw.get("product_id") or raw.get("productId"), "product_id")
            quantity = as_decimal(raw.get("quantity"), "quantity")
            self._check_scale(quantity, QUANTITY_PLACES, "quantity", index)
            if quantity <= ZERO:
                raise ValidationError(
                    f"Item {index}: quantity must be greater than zero",
                    {"line_number": index, "quantity": str(quantity)},
                )

            product = session.get(Product, product_id)
            if product is None:
                raise NotFound(f"Product not found: {product_id}", {"product_id": str(product_id)})
            if not product.in_stock:
                raise ValidationError(
                    f"Product '{product.name}' is not in stock", {"product_id": str(product_id)}
                )
            if quantity < product.minimum_order_quantity:
                raise ValidationError(
                    f"Item {index}: minimum order quantity for '{product.name}' "
                    f"is {product.minimum_order_quantity}",
                    {"line_number": index, "minimum": product.minimum_order_quantity},
                )
            if product.currency.upper() != currency:
                raise ValidationError(
                    f"Product '{product.name}' is priced in {product.currency}, order is in {currency}",
                    {"product_id": str(product_id), "currency": product.currency},
                )

            unit_price = product.price
            if raw.get("unit_price") is not None:
                unit_price = as_decimal(raw["unit_price"], "unit_price")
                self._check_scale(unit_price, MONEY_PLACES, "unit_price", index)
                if unit_price <= ZERO:
                    raise ValidationError(f"Item {index}: unit_price must be positive")

            fees = as_decimal(raw.get("fees", 0), "fees")
            self._check_scale(fees, MONEY_PLACES, "fees", index)
            if fees < ZERO:
                raise ValidationError(f"Item {index}: fees cannot be negative")

            items.append(
                OrderItem(
                    line_number=index,
                    product_id=product.id,
                    product_name=product.name,
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=self.calculator.item_total(quantity, unit_price),
                    fees=fees,
                )
            )
        return items

    def _apply_totals(self, order: Order) -> None:
        totals = self.calculator.calculate(item.total_price for item in order.items)
        order.subtotal = totals.subtotal
        order.fees = totals.fees
        order.taxes = totals.taxes
        order.total_amount = totals.total_amount

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def place_order(
        self,
        actor: Actor,
        type: Any,
        items: Iterable[dict],
        custody_service_id: Any = None,
        currency: Optional[str] = None,
        notes: Optional[str] = None,
        user_id: Any = None,
    ) -> OrderSnapshot:
        """Create a pending order with priced lines"""
        order_type = parse_order_type(type)
        owner_id = as_uuid(user_id, "user_id") if user_id else actor.user_id
        if not actor.can_access(owner_id):
            raise Forbidden("You can only place orders for yourself")
        currency = (currency or self.default_currency).upper()

        with self.db.session_context() as session:
            if session.get(User, owner_id) is None:
                raise NotFound(f"User not found: {owner_id}", {"user_id": str(owner_id)})

            custody_id = None
            if custody_service_id:
                custody_id = as_uuid(custody_service_id, "custody_service_id")
                if session.get(CustodyService, custody_id) is None:
                    raise NotFound(
                        f"Custody service not found: {custody_id}",
                        {"custody_service_id": str(custody_id)},
                    )

            order_id = uuid.uuid4()
            order = Order(
                id=order_id,
                user_id=owner_id,
                order_number=f"ORD-{order_id.hex[:8].upper()}",
                type=order_type,
                status=OrderStatus.PENDING,
                currency=currency,
                custody_service_id=custody_id,
                notes=notes,
            )
            order.items = self._build_items(session, items, currency)
            self._apply_totals(order)
            session.add(order)
            session.flush()
            snapshot = OrderSnapshot.from_model(order)

        logger.info(
            f"Order {snapshot.order_number} placed: {order_type.value} "
            f"{len(snapshot.items)} line(s), total {snapshot.total_amount} {currency}"
        )
        return snapshot

    def get_order(self, order_id: Any, actor: Actor) -> OrderSnapshot:
        order_id = as_uuid(order_id, "order_id")
        with self.db.session_context() as session:
            order = self._load(session, order_id)
            if not actor.can_access(order.user_id):
                raise Forbidden("You can only view your own orders", {"order_id": str(order_id)})
            return OrderSnapshot.from_model(order)

    def list_orders(
        self,
        actor: Actor,
        page: int = 1,
        limit: Optional[int] = None,
        status: Any = None,
        type: Any = None,
        user_id: Any = None,
    ) -> dict:
        """Paginated listing, newest first

        Non-admins only ever see their own orders.
        """
        try:
            page = max(1, int(page or 1))
            limit = int(limit or self.page_size)
        except (TypeError, ValueError):
            raise ValidationError("page and limit must be integers")
        limit = min(max(1, limit), self.max_page_size)

        stmt = select(Order)
        if actor.is_admin:
            if user_id:
                stmt = stmt.where(Order.user_id == as_uuid(user_id, "user_id"))
        else:
            if user_id and as_uuid(user_id, "user_id") != actor.user_id:
                raise Forbidden("You can only view your own orders")
            stmt = stmt.where(Order.user_id == actor.user_id)
        if status:
            stmt = stmt.where(Order.status == parse_order_status(status))
        if type:
            stmt = stmt.where(Order.type == parse_order_type(type))

        with self.db.session_context() as session:
            total = session.scalar(select(func.count()).select_from(stmt.subquery()))
            rows = session.scalars(
                stmt.order_by(Order.created_at.desc(), Order.id)
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            orders = [OrderSnapshot.from_model(o) for o in rows]

        total_pages = math.ceil(total / limit) if total else 0
        return {
            "orders": orders,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": total_pages,
                "has_next": page < total_pages,
                "has_previous": page > 1,
            },
        }

    def update_order(
        self,
        order_id: Any,
        actor: Actor,
        notes: Optional[str] = None,
        items: Optional[Iterable[dict]] = None,
    ) -> OrderSnapshot:
        """Edit notes (before a terminal status) or items (only while pending)"""
        order_id = as_uuid(order_id, "order_id")

        with self.db.session_context() as session:
            order = self._load(session, order_id, for_update=True)
            if not actor.can_access(order.user_id):
                raise Forbidden("You can only update your own orders", {"order_id": str(order_id)})
            if order.status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED):
                raise InvalidTransition(
                    f"Cannot update order with status '{order.status.value}'",
                    order_id,
                    order.status,
                )

            if items is not None:
                if order.status is not OrderStatus.PENDING:
                    raise OrderLocked(order_id, order.status)
                new_items = self._build_items(session, items, order.currency)
                order.items.clear()
                session.flush()
                order.items.extend(new_items)
                self._apply_totals(order)

            if notes is not None:
                order.notes = notes

            session.flush()
            snapshot = OrderSnapshot.from_model(order)

        logger.info(f"Order {order_id} updated by {actor.user_id}")
        return snapshot

    def delete_order(self, order_id: Any, actor: Actor) -> int:
        """Hard delete an order and its items; returns the deleted item count"""
        if not actor.is_admin:
            raise Forbidden("Only administrators can delete orders")
        order_id = as_uuid(order_id, "order_id")

        with self.db.session_context() as session:
            order = self._load(session, order_id, for_update=True)
            item_count = len(order.items)
            session.delete(order)

        logger.warning(f"Order {order_id} hard-deleted by admin {actor.user_id} ({item_count} item(s))")
        return item_count
