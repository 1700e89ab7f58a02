"""
Position resolution

Finds the position a fulfillment line applies to, by exact match on
(user_id, product_id, portfolio_id, custody_service_id). A NULL custody
service only matches NULL. Matching rows are locked FOR UPDATE so the
read-then-write that follows is atomic against concurrent fulfillments.
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from metalledger.models import Position, PositionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionKey:
    user_id: uuid.UUID
    product_id: uuid.UUID
    portfolio_id: uuid.UUID
    custody_service_id: Optional[uuid.UUID] = None


class MatchKind(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    NONE = "none"


@dataclass(frozen=True)
class Resolution:
    kind: MatchKind
    position: Optional[Position] = None

    @classmethod
    def none(cls) -> "Resolution":
        return cls(MatchKind.NONE)


class PositionResolver:
    """Resolves a key to its active match, else most recent closed lot, else none"""

    def _key_query(self, key: PositionKey, status: PositionStatus):
        stmt = select(Position).where(
            Position.user_id == key.user_id,
            Position.product_id == key.product_id,
            Position.portfolio_id == key.portfolio_id,
            Position.status == status,
        )
        if key.custody_service_id is None:
            stmt = stmt.where(Position.custody_service_id.is_(None))
        else:
            stmt = stmt.where(Position.custody_service_id == key.custody_service_id)
        return stmt

    def find_active(self, session: Session, key: PositionKey) -> Optional[Position]:
        stmt = (
            self._key_query(key, PositionStatus.ACTIVE)
            .order_by(Position.created_at, Position.id)
            .limit(1)
            .with_for_update()
        )
        return session.scalars(stmt).first()

    def find_latest_closed(self, session: Session, key: PositionKey) -> Optional[Position]:
        # Older closed lots are never reactivated
        stmt = (
            self._key_query(key, PositionStatus.CLOSED)
            .order_by(Position.closed_date.desc(), Position.updated_at.desc())
            .limit(1)
            .with_for_update()
        )
        return session.scalars(stmt).first()

    def resolve(self, session: Session, key: PositionKey) -> Resolution:
        active = self.find_active(session, key)
        if active is not None:
            return Resolution(MatchKind.ACTIVE, active)

        closed = self.find_latest_closed(session, key)
        if closed is not None:
            return Resolution(MatchKind.CLOSED, closed)

        logger.debug(f"No position for product {key.product_id} in portfolio {key.portfolio_id}")
        return Resolution.none()
