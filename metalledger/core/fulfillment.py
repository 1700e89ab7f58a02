"""
Fulfillment orchestrator

Turns a delivered order's lines into position mutations and ledger rows:

1. Lock the owner row, then resolve the owner's portfolio, auto-creating
   one if the owner has none
2. Per line, inside its own SAVEPOINT: resolve -> mutate -> record
3. Return every outcome for logging and audit

Runs inside the caller's unit of work. Any line failure propagates and the
caller rolls back the whole pass; no line is applied on its own.
"""

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from metalledger.core.audit import AuditEvent
from metalledger.core.errors import AlreadyFulfilled
from metalledger.core.portfolio_service import PortfolioService
from metalledger.core.position_mutator import MutationOutcome, PositionMutator
from metalledger.core.position_resolver import PositionKey, PositionResolver
from metalledger.core.transaction_recorder import TransactionRecorder
from metalledger.models import Order, OrderStatus, Transaction, User, utcnow

logger = logging.getLogger(__name__)


@dataclass
class FulfillmentResult:
    order_id: uuid.UUID
    portfolio_id: uuid.UUID
    portfolio_created: bool
    outcomes: list[MutationOutcome] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    events: list[AuditEvent] = field(default_factory=list)

    def summary(self) -> dict:
        return {
            "order_id": str(self.order_id),
            "portfolio_id": str(self.portfolio_id),
            "portfolio_created": self.portfolio_created,
            "mutations": [
                {
                    "kind": o.kind.value,
                    "position_id": str(o.position.id),
                    "before_quantity": None if o.before_quantity is None else str(o.before_quantity),
                    "after_quantity": str(o.after_quantity),
                    "after_price": str(o.after_price),
                }
                for o in self.outcomes
            ],
            "transaction_ids": [str(t.id) for t in self.transactions],
        }


class FulfillmentOrchestrator:
    """Drives resolver, mutator and recorder for every line of an order"""

    def __init__(
        self,
        portfolios: PortfolioService,
        resolver: PositionResolver | None = None,
        mutator: PositionMutator | None = None,
        recorder: TransactionRecorder | None = None,
    ) -> None:
        self.portfolios = portfolios
        self.resolver = resolver or PositionResolver()
        self.mutator = mutator or PositionMutator()
        self.recorder = recorder or TransactionRecorder()

    def fulfill(self, session: Session, order: Order) -> FulfillmentResult:
        """Apply every line of a shipped order

        Only the shipped -> delivered transition may call this; an order in
        any other status is rejected so a delivered order is never applied
        twice.
        """
        if order.status is not OrderStatus.SHIPPED:
            raise AlreadyFulfilled(order.id, order.status)

        # Serializes fulfillment per owner: the portfolio lookup and every
        # position resolution below may match zero rows, which FOR UPDATE
        # cannot lock
        session.get(User, order.user_id, with_for_update=True)
        portfolio, created = self.portfolios.get_or_create_default(session, order.user_id)
        result = FulfillmentResult(
            order_id=order.id, portfolio_id=portfolio.id, portfolio_created=created
        )
        if created:
            result.events.append(
                AuditEvent(
                    action="portfolio.created",
                    resource_type="portfolio",
                    resource_id=str(portfolio.id),
                    user_id=str(order.user_id),
                    changes={"after": {"name": portfolio.name}},
                )
            )

        now = utcnow()
        for line in order.items:
            key = PositionKey(
                user_id=order.user_id,
                product_id=line.product_id,
                portfolio_id=portfolio.id,
                custody_service_id=order.custody_service_id,
            )
            with session.begin_nested():
                resolution = self.resolver.resolve(session, key)
                outcome = self.mutator.apply(
                    session, resolution, key, order.type, line, order.currency, now
                )
                session.flush()
                recorded = self.recorder.record(session, outcome.position, order, line, now)

            result.outcomes.append(outcome)
            result.transactions.append(recorded.transaction)
            result.events.append(outcome.to_event())
            result.events.append(recorded.to_event())

        logger.info(
            f"Fulfilled order {order.id}: {len(result.outcomes)} position mutation(s) "
            f"in portfolio {portfolio.id}"
        )
        return result
