"""Notification model - one unit of information delivered to one recipient."""

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from sqlalchemy import String, DateTime, Boolean, ForeignKey, Index, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.fsm.states import DeliveryMethod, NotificationPriority
from app.timeutils import as_utc


class Notification(Base):
    """
    Notification record.
    The row itself is the in-app delivery; email/push carry their own sent flags.
    """

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    recipient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Empty for system notifications
    sender_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        index=True,
    )

    type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    action_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    action_text: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    priority: Mapped[str] = mapped_column(
        String(10),
        default=NotificationPriority.MEDIUM.value,
        nullable=False,
    )

    delivery_method: Mapped[List[str]] = mapped_column(
        JSON,
        default=lambda: [DeliveryMethod.IN_APP.value],
        nullable=False,
    )

    # Status
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Channel delivery flags
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    push_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    push_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Deferred dispatch (quiet hours); cleared once delivered
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
        Index("ix_notifications_recipient_unread", "recipient_id", "is_read", "is_deleted"),
    )

    def __repr__(self) -> str:
        return f"<Notification {self.type} -> {self.recipient_id}>"

    def to_dict(self) -> dict:
        def _iso(value: Optional[datetime]) -> Optional[str]:
            return as_utc(value).isoformat() if value else None

        return {
            "id": str(self.id),
            "recipientId": str(self.recipient_id),
            "senderId": str(self.sender_id) if self.sender_id else None,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "actionUrl": self.action_url,
            "actionText": self.action_text,
            "priority": self.priority,
            "deliveryMethod": list(self.delivery_method or []),
            "isRead": self.is_read,
            "readAt": _iso(self.read_at),
            "emailSent": self.email_sent,
            "pushSent": self.push_sent,
            "scheduledFor": _iso(self.scheduled_for),
            "expiresAt": _iso(self.expires_at),
            "createdAt": _iso(self.created_at),
        }
