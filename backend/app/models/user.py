"""
EngageSphere Backend - User Model
==================================

What:  ORM mapping of the `users` table owned by the account subsystem.
Who:   PaymentService reads it to validate userId at order creation.

The payment subsystem never writes to this table.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class User(Base):
    """Registered account, looked up by its public `user_id`."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def display_name(self) -> str:
        """Full name when set, otherwise the username."""
        return self.name or self.username or ""

    def __repr__(self) -> str:
        return f"<User(user_id='{self.user_id}', username='{self.username}')>"
