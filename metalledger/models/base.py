"""
Base model class for SQLAlchemy ORM

Provides:
- Base DeclarativeBase for all models
- UUIDPrimaryKeyMixin for UUID identifiers
- TimestampMixin for automatic created_at/updated_at tracking (UTC)
- enum_type() for enums stored by their lowercase value
"""

import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy import DateTime, Enum, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enum_type(enum_cls: type[enum.Enum], length: int = 20) -> Enum:
    """Store an enum by value ('pending'), not by member name ('PENDING')"""
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models"""

    pass


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


class TimestampMixin(CreatedAtMixin):
    """Mixin class for automatic timestamp tracking

    Adds created_at and updated_at columns to any model that uses this mixin.
    """

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
