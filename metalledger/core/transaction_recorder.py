"""
Transaction recorder - appends one ledger row per position mutation
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from metalledger.core.audit import AuditEvent
from metalledger.models import Order, OrderItem, Position, Transaction, TransactionType, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordedTransaction:
    transaction: Transaction

    def to_event(self) -> AuditEvent:
        tx = self.transaction
        return AuditEvent(
            action="transaction.recorded",
            resource_type="transaction",
            resource_id=str(tx.id),
            user_id=str(tx.user_id),
            changes={
                "after": {
                    "type": tx.type,
                    "quantity": tx.quantity,
                    "price": tx.price,
                    "fees": tx.fees,
                }
            },
            details={"position_id": tx.position_id, "notes": tx.notes},
        )


class TransactionRecorder:
    """Unconditional append; every call creates a new row"""

    @staticmethod
    def notes_for(order: Order) -> str:
        return f"{order.type.value.capitalize()} order {order.id}"

    def record(
        self,
        session: Session,
        position: Position,
        order: Order,
        line: OrderItem,
        now: datetime | None = None,
    ) -> RecordedTransaction:
        transaction = Transaction(
            position_id=position.id,
            user_id=order.user_id,
            type=TransactionType(order.type.value),
            date=now or utcnow(),
            quantity=line.quantity,
            price=line.unit_price,
            fees=line.fees if line.fees is not None else 0,
            notes=self.notes_for(order),
        )
        session.add(transaction)
        session.flush()
        logger.debug(f"Recorded {transaction.type.value} transaction {transaction.id} for position {position.id}")
        return RecordedTransaction(transaction)
