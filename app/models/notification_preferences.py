"""Notification preferences - per-user channel toggles and quiet hours."""

import copy
import uuid
from datetime import datetime, timezone
from typing import Dict, Any
from zoneinfo import ZoneInfo

from sqlalchemy import String, DateTime, Boolean, Integer, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.fsm.states import DeliveryMethod, NotificationCategory
from app.timeutils import as_utc


DEFAULT_CHANNEL_PREFERENCES: Dict[str, Dict[str, bool]] = {
    NotificationCategory.MATCHES.value: {"in_app": True, "email": True, "push": True},
    NotificationCategory.MESSAGES.value: {"in_app": True, "email": False, "push": True},
    NotificationCategory.INTERESTS.value: {"in_app": True, "email": True, "push": False},
    NotificationCategory.PROFILE_VIEWS.value: {"in_app": True, "email": False, "push": False},
    NotificationCategory.SYSTEM.value: {"in_app": True, "email": True, "push": False},
    NotificationCategory.SUBSCRIPTION.value: {"in_app": True, "email": True, "push": False},
    NotificationCategory.VERIFICATION.value: {"in_app": True, "email": True, "push": False},
}


def default_channel_preferences() -> Dict[str, Dict[str, bool]]:
    return copy.deepcopy(DEFAULT_CHANNEL_PREFERENCES)


class NotificationPreferences(Base):
    """
    One row per user.
    `preferences` maps category -> {in_app, email, push}.
    """

    __tablename__ = "notification_preferences"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )

    preferences: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        default=default_channel_preferences,
        nullable=False,
    )

    # Digests
    daily_digest: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    weekly_digest: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    marketing_emails: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Quiet hours, HH:MM in quiet_hours_timezone
    quiet_hours_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    quiet_hours_start: Mapped[str] = mapped_column(String(5), default="22:00", nullable=False)
    quiet_hours_end: Mapped[str] = mapped_column(String(5), default="08:00", nullable=False)
    quiet_hours_timezone: Mapped[str] = mapped_column(
        String(50),
        default="Asia/Kolkata",
        nullable=False,
    )

    # Frequency limits
    max_daily_notifications: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    max_hourly_notifications: Mapped[int] = mapped_column(Integer, default=10, nullable=False)

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

    def __repr__(self) -> str:
        return f"<NotificationPreferences {self.user_id}>"

    def should_send_notification(self, category: str, channel: str) -> bool:
        """Whether `channel` is enabled for `category`."""
        category = NotificationCategory(category).value
        channel = DeliveryMethod(channel).value
        category_prefs = (self.preferences or {}).get(category)
        if not category_prefs:
            return False
        return category_prefs.get(channel) is True

    def is_in_quiet_hours(self, now: datetime) -> bool:
        """
        Whether `now` falls inside the quiet window.

        Times are compared as HH:MM in the user's timezone, inclusive at both
        ends. A start later than the end means the window spans midnight.
        """
        if not self.quiet_hours_enabled:
            return False

        local = as_utc(now).astimezone(ZoneInfo(self.quiet_hours_timezone))
        current = local.strftime("%H:%M")
        start = _normalize_hhmm(self.quiet_hours_start)
        end = _normalize_hhmm(self.quiet_hours_end)

        if start > end:
            return current >= start or current <= end
        return start <= current <= end

    def to_dict(self) -> dict:
        return {
            "userId": str(self.user_id),
            "preferences": self.preferences,
            "dailyDigest": self.daily_digest,
            "weeklyDigest": self.weekly_digest,
            "marketingEmails": self.marketing_emails,
            "quietHours": {
                "enabled": self.quiet_hours_enabled,
                "startTime": self.quiet_hours_start,
                "endTime": self.quiet_hours_end,
                "timezone": self.quiet_hours_timezone,
            },
            "maxDailyNotifications": self.max_daily_notifications,
            "maxHourlyNotifications": self.max_hourly_notifications,
        }


def _normalize_hhmm(value: str) -> str:
    """'7:00' -> '07:00' so string comparison orders correctly."""
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{int(minutes):02d}"
