"""
User model for caller identity.

Accounts and sessions are issued by the storefront's auth service; this
service only reads them to attach subscriptions to users and to decide
who counts as an admin.
"""

import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base
from app.models.base import TimestampMixin


class UserRole(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class User(Base, TimestampMixin):
    """Storefront user account."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[UserRole] = mapped_column(String(20), default=UserRole.CUSTOMER, nullable=False)

    # Session management
    session_token: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True, index=True)
    session_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    push_subscriptions = relationship("PushSubscription", back_populates="user", lazy="noload")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def generate_session_token(self, hours: int = 168) -> str:
        """Generate a new session token and set expiry."""
        self.session_token = secrets.token_hex(32)
        self.session_expires_at = datetime.now(timezone.utc) + timedelta(hours=hours)
        return self.session_token

    def is_session_valid(self) -> bool:
        """Check if current session is valid."""
        if not self.session_token or not self.session_expires_at:
            return False
        expires_at = self.session_expires_at
        if expires_at.tzinfo is None:
            # SQLite hands back naive values
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) < expires_at

    def __repr__(self) -> str:
        return f"<User {self.email}>"
