"""
Order state machine

    pending -> confirmed -> processing -> shipped -> delivered -> completed
        \\__________\\____________\\____________\\-> cancelled

completed and cancelled are terminal. Advancing shipped -> delivered runs
fulfillment in the same unit of work as the status write: both commit or
neither does. The order row is locked for the duration, so two concurrent
advances of one order serialize and the second one sees the new status.
"""

import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from metalledger.core.audit import AuditEvent, AuditTrail
from metalledger.core.errors import (
    AlreadyCancelled,
    AlreadyTerminal,
    Forbidden,
    InvalidTransition,
    OrderNotFound,
    UnknownStatus,
)
from metalledger.core.fulfillment import FulfillmentOrchestrator
from metalledger.core.snapshots import Actor, OrderSnapshot, as_uuid
from metalledger.models import Order, OrderStatus

logger = logging.getLogger(__name__)

FORWARD_TRANSITIONS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
    OrderStatus.DELIVERED: OrderStatus.COMPLETED,
}

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})

# Cancellation never undoes fulfillment, so it is only valid before delivery
CANCELLABLE_STATUSES = frozenset(
    {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED}
)


def coerce_status(value: Any) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).lower())
    except ValueError:
        raise UnknownStatus(value)


def next_status(current: Any, order_id: Any = None) -> OrderStatus:
    """The single deterministic successor of a status"""
    status = coerce_status(current)
    if status is OrderStatus.COMPLETED:
        raise AlreadyTerminal(order_id)
    if status is OrderStatus.CANCELLED:
        raise AlreadyCancelled(order_id)
    return FORWARD_TRANSITIONS[status]


class OrderStateMachine:
    """Validates and applies status transitions for a single order"""

    def __init__(
        self,
        db: Any,
        fulfillment: FulfillmentOrchestrator,
        audit: AuditTrail | None = None,
    ) -> None:
        self.db = db
        self.fulfillment = fulfillment
        self.audit = audit or AuditTrail()

    @staticmethod
    def _load_for_update(session: Session, order_id: uuid.UUID) -> Order:
        order = session.get(Order, order_id, with_for_update=True)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    @staticmethod
    def _status_event(order: Order, previous: OrderStatus, actor: Actor | None = None) -> AuditEvent:
        return AuditEvent(
            action="order.status_changed",
            resource_type="order",
            resource_id=str(order.id),
            user_id=str(actor.user_id) if actor else str(order.user_id),
            changes={"before": {"status": previous}, "after": {"status": order.status}},
        )

    def advance(self, order_id: Any) -> OrderSnapshot:
        """Move an order to its next status

        Raises:
            AlreadyTerminal, AlreadyCancelled, UnknownStatus: state errors
            InsufficientQuantity, PositionNotFound: fulfillment rejected a line
            PersistenceError: transient store failure, retry the call
        """
        order_id = as_uuid(order_id, "order_id")
        result = None

        with self.db.session_context() as session:
            order = self._load_for_update(session, order_id)
            previous = order.status
            new_status = next_status(previous, order_id)

            if new_status is OrderStatus.DELIVERED:
                result = self.fulfillment.fulfill(session, order)

            order.status = new_status
            session.flush()
            snapshot = OrderSnapshot.from_model(order, fulfillment=result)
            events = list(result.events) if result else []
            events.append(self._status_event(order, previous))

        # Only reached after commit
        self.audit.publish_all(events)
        logger.info(f"Order {order_id} processed successfully: {previous.value} -> {new_status.value}")
        return snapshot

    def cancel(self, order_id: Any, actor: Actor) -> OrderSnapshot:
        """Cancel an order

        Owners may cancel only while pending; administrators at any status
        before delivery.
        """
        order_id = as_uuid(order_id, "order_id")

        with self.db.session_context() as session:
            order = self._load_for_update(session, order_id)
            previous = order.status

            if not actor.can_access(order.user_id):
                raise Forbidden("You can only cancel your own orders", {"order_id": str(order_id)})

            if previous is OrderStatus.CANCELLED:
                raise InvalidTransition("Order is already cancelled", order_id, previous)
            if previous in TERMINAL_STATUSES:
                raise InvalidTransition(
                    f"Cannot cancel order with status '{previous.value}'", order_id, previous
                )
            if not actor.is_admin and previous is not OrderStatus.PENDING:
                raise InvalidTransition(
                    f"Cannot cancel order with status '{previous.value}'. "
                    "Only pending orders can be cancelled by users.",
                    order_id,
                    previous,
                )
            if previous not in CANCELLABLE_STATUSES:
                raise InvalidTransition(
                    f"Cannot cancel order with status '{previous.value}' after delivery",
                    order_id,
                    previous,
                )

            order.status = OrderStatus.CANCELLED
            session.flush()
            snapshot = OrderSnapshot.from_model(order)
            event = self._status_event(order, previous, actor)

        self.audit.publish(event)
        logger.info(f"Order {order_id} cancelled by {actor.user_id}")
        return snapshot
