"""
Delivery log for push notifications.
"""

import uuid
from enum import Enum

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base
from app.models.base import TimestampMixin


class NotificationStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    DELIVERED = "delivered"
    CLICKED = "clicked"


class NotificationLog(Base, TimestampMixin):
    """One row per delivery attempt.

    ``notification_id`` mirrors ``data_payload["id"]`` so the client's
    click/close report can be matched back to the attempt.
    """

    __tablename__ = "push_notification_logs"
    __table_args__ = (
        Index("ix_push_notification_logs_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    subscription_id: Mapped[str] = mapped_column(
        ForeignKey("push_subscriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    notification_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    data_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[NotificationStatus] = mapped_column(
        String(20), default=NotificationStatus.SENT, nullable=False, index=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<NotificationLog {self.id} {self.status}>"
