"""Interest model - one-directional expression of interest between two members."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Boolean, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.fsm.states import InterestStatus, InterestPriority
from app.timeutils import as_utc


class Interest(Base):
    """
    Interest sent from one user to another.
    Never deleted; status records the final disposition.
    """

    __tablename__ = "interests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    from_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    to_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Optional note; overwritten by the response message on reply
    message: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    priority: Mapped[str] = mapped_column(
        String(10),
        default=InterestPriority.NORMAL.value,
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=InterestStatus.SENT.value,
        nullable=False,
    )

    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    responded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

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
        UniqueConstraint("from_user_id", "to_user_id", name="uq_interest_pair"),
        Index("ix_interests_to_user_status", "to_user_id", "status"),
        Index("ix_interests_from_user_status", "from_user_id", "status"),
        Index("ix_interests_sent_at", "sent_at"),
    )

    def __repr__(self) -> str:
        return f"<Interest {self.from_user_id}->{self.to_user_id} {self.status}>"

    def is_expired(self, now: datetime) -> bool:
        """Expiry check that tolerates naive timestamps from SQLite."""
        return as_utc(self.expires_at) < as_utc(now)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "fromUserId": str(self.from_user_id),
            "toUserId": str(self.to_user_id),
            "message": self.message,
            "priority": self.priority,
            "status": self.status,
            "sentAt": as_utc(self.sent_at).isoformat() if self.sent_at else None,
            "respondedAt": as_utc(self.responded_at).isoformat() if self.responded_at else None,
            "expiresAt": as_utc(self.expires_at).isoformat() if self.expires_at else None,
            "isRead": self.is_read,
        }
