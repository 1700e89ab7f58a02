"""
Transaction ledger

Tables:
- transactions: one immutable row per buy or sell applied to a position
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import DateTime, ForeignKey, Index, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column

from metalledger.models.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin, enum_type


class TransactionType(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class Transaction(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """Audit record of a single buy or sell event

    Rows are appended, never updated.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transactions_position", "position_id"),
        Index("idx_transactions_user_date", "user_id", "date"),
    )

    position_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("position.id", ondelete="CASCADE")
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    type: Mapped[TransactionType] = mapped_column(enum_type(TransactionType, length=10))
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4))
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    fees: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, default=None)
