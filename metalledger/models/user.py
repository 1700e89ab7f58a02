"""
User accounts

Tables:
- users: platform users (customers and administrators)
"""

import enum
from sqlalchemy import String, Index
from sqlalchemy.orm import Mapped, mapped_column

from metalledger.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type


class UserRole(str, enum.Enum):
    """Role enumeration"""
    CUSTOMER = "customer"
    USER = "user"
    ADMIN = "admin"


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """User account

    Owns portfolios, positions and orders. The role decides whether the
    user may act on other users' orders.
    """
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_email", "email"),
    )

    email: Mapped[str] = mapped_column(String(255), unique=True)
    username: Mapped[str | None] = mapped_column(String(50), unique=True, default=None)
    first_name: Mapped[str | None] = mapped_column(String(100), default=None)
    last_name: Mapped[str | None] = mapped_column(String(100), default=None)
    role: Mapped[UserRole] = mapped_column(enum_type(UserRole), default=UserRole.CUSTOMER)
    status: Mapped[str] = mapped_column(
        String(20),
        default="active"
    )  # active, inactive, suspended

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    @property
    def display_name(self) -> str:
        """Full name, else username, else the local part of the email"""
        full_name = " ".join(p for p in (self.first_name, self.last_name) if p)
        if full_name:
            return full_name
        if self.username:
            return self.username
        return self.email.split("@", 1)[0]
