"""
Audit side channel

Each position mutation, recorded transaction and order status change
becomes an AuditEvent. Events are collected while a unit of work runs and
published only after it commits, so a rolled-back fulfillment leaves no
trace. Publishing writes a JSON line to the "metalledger.audit" logger and
hands the event to any registered listeners.
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional
import uuid

from metalledger.models import utcnow

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("metalledger.audit")


def _jsonable(value: Any) -> Any:
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


@dataclass(frozen=True)
class AuditEvent:
    action: str  # position.created, transaction.recorded, order.status_changed, ...
    resource_type: str  # position, transaction, order, portfolio
    resource_id: str
    user_id: Optional[str] = None
    changes: dict = field(default_factory=dict)  # {"before": {...}, "after": {...}}
    details: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        payload["changes"] = {
            side: {k: _jsonable(v) for k, v in values.items()}
            for side, values in self.changes.items()
        }
        payload["details"] = {k: _jsonable(v) for k, v in self.details.items()}
        return payload


AuditListener = Callable[[AuditEvent], None]


class AuditTrail:
    """Publishes audit events to the log and to listeners"""

    def __init__(self) -> None:
        self._listeners: list[AuditListener] = []

    def subscribe(self, listener: AuditListener) -> None:
        self._listeners.append(listener)

    def publish(self, event: AuditEvent) -> None:
        audit_logger.info(json.dumps(event.to_dict(), sort_keys=True))
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                # The ledger outcome is already committed at this point
                logger.exception(f"Audit listener failed for {event.action}")

    def publish_all(self, events: Iterable[AuditEvent]) -> None:
        for event in events:
            self.publish(event)
