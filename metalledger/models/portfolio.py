"""
Portfolio models for tracking held positions

Tables:
- portfolio: named containers owned by one user
- position: a user's holding of one product per portfolio/custody context
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
    literal_column,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from metalledger.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type


class PositionStatus(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Portfolio(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Portfolio

    Created implicitly on the owner's first delivered order when the owner
    has none.
    """

    __tablename__ = "portfolio"
    __table_args__ = (
        Index("idx_portfolio_owner_created", "owner_id", "created_at"),
    )

    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    owner_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    positions: Mapped[list["Position"]] = relationship(
        "Position",
        back_populates="portfolio",
        cascade="all, delete-orphan",
    )


class Position(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Position

    Key: (user_id, product_id, portfolio_id, custody_service_id). At most
    one active row per key; a NULL custody service is its own key value.
    purchase_price is the weighted-average cost basis per unit.
    """

    __tablename__ = "position"
    __table_args__ = (
        Index(
            "idx_position_key_status",
            "user_id", "product_id", "portfolio_id", "custody_service_id", "status",
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id"))
    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("portfolio.id", ondelete="CASCADE")
    )
    custody_service_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("custody_services.id"), default=None
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4))
    purchase_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    market_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    status: Mapped[PositionStatus] = mapped_column(
        enum_type(PositionStatus), default=PositionStatus.ACTIVE
    )
    purchase_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    closed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)

    portfolio: Mapped[Portfolio] = relationship("Portfolio", back_populates="positions")


# At most one active row per key. Unique indexes treat NULLs as distinct, so
# the default custody context is folded into a sentinel that no UUID takes.
NO_CUSTODY_SENTINEL = "00000000-0000-0000-0000-000000000000"

Index(
    "uq_position_active_key",
    Position.user_id,
    Position.product_id,
    Position.portfolio_id,
    func.coalesce(Position.custody_service_id, literal_column(f"'{NO_CUSTODY_SENTINEL}'")),
    unique=True,
    sqlite_where=text("status = 'active'"),
    postgresql_where=text("status = 'active'"),
).ddl_if(dialect=("sqlite", "postgresql"))
