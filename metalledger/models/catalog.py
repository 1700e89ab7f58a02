"""
Catalog models for tradable products and custody offerings

Tables:
- metals: Gold, silver, platinum, palladium
- products: coins and bars with their catalog price
- custodians: vault operators
- custody_services: storage plans offered by a custodian
"""

import enum
import uuid
from decimal import Decimal
from sqlalchemy import Boolean, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from metalledger.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type


class WeightUnit(str, enum.Enum):
    GRAMS = "grams"
    TROY_OUNCES = "troy_ounces"
    KILOGRAMS = "kilograms"


class PaymentFrequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    ONETIME = "onetime"


class Metal(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "metals"

    name: Mapped[str] = mapped_column(String(50))
    symbol: Mapped[str] = mapped_column(String(2), unique=True)


class Product(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Tradable product

    The catalog price is the default unit price of new order lines.
    """

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(200))
    metal_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("metals.id"))
    weight: Mapped[Decimal] = mapped_column(Numeric(12, 4))
    weight_unit: Mapped[WeightUnit] = mapped_column(
        enum_type(WeightUnit), default=WeightUnit.TROY_OUNCES
    )
    purity: Mapped[Decimal] = mapped_column(Numeric(5, 4), default=Decimal("0.999"))
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3), default="CHF")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    in_stock: Mapped[bool] = mapped_column(Boolean, default=True)
    minimum_order_quantity: Mapped[int] = mapped_column(default=1)

    metal: Mapped[Metal] = relationship("Metal")


class Custodian(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "custodians"

    name: Mapped[str] = mapped_column(String(200), unique=True)

    services: Mapped[list["CustodyService"]] = relationship(
        "CustodyService",
        back_populates="custodian",
        cascade="all, delete-orphan",
    )


class CustodyService(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Storage plan; part of a position's uniqueness key"""

    __tablename__ = "custody_services"

    custodian_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("custodians.id", ondelete="CASCADE")
    )
    name: Mapped[str] = mapped_column(String(200))
    fee: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    payment_frequency: Mapped[PaymentFrequency] = mapped_column(
        enum_type(PaymentFrequency), default=PaymentFrequency.YEARLY
    )
    currency: Mapped[str] = mapped_column(String(3), default="CHF")
    max_weight: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), default=None)

    custodian: Mapped[Custodian] = relationship("Custodian", back_populates="services")
