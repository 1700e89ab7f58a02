"""
Portfolio service - portfolio provisioning and holdings queries
"""

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from metalledger.core.errors import Forbidden, NotFound, ValidationError
from metalledger.core.snapshots import Actor, as_uuid
from metalledger.models import Portfolio, Position, PositionStatus, Transaction, User

logger = logging.getLogger(__name__)


class PortfolioService:
    """Portfolio provisioning and read access to positions and transactions

    Auto-provisioning policy: when an owner has several portfolios, the
    first-created one (created_at, then id) receives delivered orders.
    """

    def __init__(
        self,
        db: Any = None,
        name_template: str = "{owner} Portfolio",
        description: str = "Auto-created for order fulfillment",
    ) -> None:
        self.db = db
        self.name_template = name_template
        self.description = description

    def default_name_for(self, owner: User) -> str:
        return self.name_template.format(owner=owner.display_name)

    def find_default(self, session: Session, owner_id: uuid.UUID) -> Optional[Portfolio]:
        stmt = (
            select(Portfolio)
            .where(Portfolio.owner_id == owner_id)
            .order_by(Portfolio.created_at, Portfolio.id)
            .limit(1)
        )
        return session.scalars(stmt).first()

    def get_or_create_default(self, session: Session, owner_id: uuid.UUID) -> tuple[Portfolio, bool]:
        """Return (portfolio, created)"""
        portfolio = self.find_default(session, owner_id)
        if portfolio is not None:
            return portfolio, False

        owner = session.get(User, owner_id)
        if owner is None:
            raise NotFound(f"User not found: {owner_id}", {"user_id": str(owner_id)})

        portfolio = Portfolio(
            name=self.default_name_for(owner),
            description=self.description,
            owner_id=owner_id,
            is_active=True,
        )
        session.add(portfolio)
        session.flush()
        logger.info(f"Auto-created portfolio {portfolio.id} '{portfolio.name}' for user {owner_id}")
        return portfolio, True

    # ------------------------------------------------------------------
    # Operations that own their unit of work
    # ------------------------------------------------------------------

    def create_portfolio(
        self, actor: Actor, name: str, description: str | None = None, owner_id: Any = None
    ) -> Portfolio:
        owner = as_uuid(owner_id, "owner_id") if owner_id else actor.user_id
        if not actor.can_access(owner):
            raise Forbidden("You can only create portfolios for yourself")
        if not name or not name.strip():
            raise ValidationError("Portfolio name is required")

        with self.db.session_context() as session:
            portfolio = Portfolio(name=name.strip(), description=description, owner_id=owner)
            session.add(portfolio)
            session.flush()
            logger.info(f"Portfolio {portfolio.id} created for user {owner}")
            return portfolio

    def list_portfolios(self, actor: Actor, owner_id: Any = None) -> list[Portfolio]:
        owner = as_uuid(owner_id, "owner_id") if owner_id else actor.user_id
        if not actor.can_access(owner):
            raise Forbidden("You can only view your own portfolios")

        with self.db.session_context() as session:
            stmt = (
                select(Portfolio)
                .where(Portfolio.owner_id == owner)
                .order_by(Portfolio.created_at, Portfolio.id)
            )
            return list(session.scalars(stmt))

    def list_positions(
        self,
        actor: Actor,
        owner_id: Any = None,
        portfolio_id: Any = None,
        status: str | None = None,
    ) -> list[Position]:
        owner = as_uuid(owner_id, "owner_id") if owner_id else actor.user_id
        if not actor.can_access(owner):
            raise Forbidden("You can only view your own positions")

        stmt = select(Position).where(Position.user_id == owner)
        if portfolio_id:
            stmt = stmt.where(Position.portfolio_id == as_uuid(portfolio_id, "portfolio_id"))
        if status:
            try:
                stmt = stmt.where(Position.status == PositionStatus(status.lower()))
            except ValueError:
                raise ValidationError(f"Invalid position status: {status}")

        with self.db.session_context() as session:
            return list(session.scalars(stmt.order_by(Position.created_at, Position.id)))

    def list_transactions(
        self, actor: Actor, owner_id: Any = None, position_id: Any = None
    ) -> list[Transaction]:
        owner = as_uuid(owner_id, "owner_id") if owner_id else actor.user_id
        if not actor.can_access(owner):
            raise Forbidden("You can only view your own transactions")

        stmt = select(Transaction).where(Transaction.user_id == owner)
        if position_id:
            stmt = stmt.where(Transaction.position_id == as_uuid(position_id, "position_id"))

        with self.db.session_context() as session:
            return list(session.scalars(stmt.order_by(Transaction.date, Transaction.created_at)))
