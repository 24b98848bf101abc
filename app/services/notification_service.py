"""
Notification Service - preference-aware creation, quiet hours and channel fan-out.
"""

import asyncio
import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.fsm.states import (
    DeliveryMethod,
    NotificationCategory,
    NotificationPriority,
    NotificationType,
    NOTIFICATION_CATEGORIES,
    NOTIFICATION_EXPIRY_DAYS,
)
from app.models.notification import Notification
from app.models.notification_preferences import NotificationPreferences
from app.services.channels import ChannelSender, EmailChannel, PushChannel
from app.services.exceptions import ServiceError, UnknownNotificationTypeError
from app.timeutils import utc_now, as_utc

logger = logging.getLogger(__name__)

HHMM_PATTERN = re.compile(r"^([0-1]?\d|2[0-3]):[0-5]\d$")


class NotificationService:
    """
    Service for creating and delivering notifications.

    Channel senders are injected so callers (and tests) decide the transport.
    """

    def __init__(
        self,
        db: AsyncSession,
        email_sender: Optional[ChannelSender] = None,
        push_sender: Optional[ChannelSender] = None,
    ):
        self.db = db
        self.email_sender = email_sender or EmailChannel()
        self.push_sender = push_sender or PushChannel()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def send_notification(
        self,
        recipient_id: uuid.UUID,
        type: str,
        title: str,
        message: str,
        *,
        sender_id: Optional[uuid.UUID] = None,
        action_url: Optional[str] = None,
        action_text: Optional[str] = None,
        priority: str = NotificationPriority.MEDIUM.value,
        data: Optional[Dict[str, Any]] = None,
        delivery_method: Optional[Sequence[str]] = None,
        scheduled_for: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """
        Create a notification and deliver it unless deferred.

        Returns None when the recipient's preferences allow none of the
        requested channels; no record is written in that case.
        """
        try:
            notification_type = NotificationType(type)
        except ValueError:
            raise UnknownNotificationTypeError(f"Unknown notification type: {type}")

        priority = NotificationPriority(priority).value
        category = NOTIFICATION_CATEGORIES[notification_type]

        preferences = await self.get_or_create_preferences(recipient_id)

        requested = self._normalize_channels(delivery_method)
        allowed = [
            method for method in requested
            if preferences.should_send_notification(category.value, method)
        ]

        if not allowed:
            logger.debug(
                f"Notification {notification_type.value} to {recipient_id} suppressed by preferences"
            )
            return None

        now = utc_now()

        if (
            priority != NotificationPriority.URGENT.value
            and scheduled_for is None
            and preferences.is_in_quiet_hours(now)
        ):
            scheduled_for = self._next_quiet_hours_end(preferences, now)
            if scheduled_for is not None:
                logger.info(
                    f"Notification {notification_type.value} to {recipient_id} deferred to {scheduled_for.isoformat()}"
                )

        if expires_at is None:
            expires_at = now + timedelta(days=NOTIFICATION_EXPIRY_DAYS[notification_type])

        notification = Notification(
            recipient_id=recipient_id,
            sender_id=sender_id,
            type=notification_type.value,
            title=title,
            message=message,
            action_url=action_url,
            action_text=action_text,
            priority=priority,
            data=data,
            delivery_method=allowed,
            scheduled_for=scheduled_for,
            expires_at=expires_at,
        )
        self.db.add(notification)
        await self.db.flush()

        if scheduled_for is None:
            await self.deliver_notification(notification)

        return notification

    @staticmethod
    def _normalize_channels(delivery_method: Optional[Sequence[str]]) -> List[str]:
        """Validated channel values in request order, duplicates dropped."""
        if not delivery_method:
            return [DeliveryMethod.IN_APP.value]

        channels: List[str] = []
        for method in delivery_method:
            try:
                value = DeliveryMethod(method).value
            except ValueError:
                raise ServiceError(f"Invalid delivery method: {method}")
            if value not in channels:
                channels.append(value)
        return channels

    @staticmethod
    def _next_quiet_hours_end(preferences: NotificationPreferences, now: datetime) -> Optional[datetime]:
        """
        Next occurrence of the quiet-hours end time, in UTC.

        Returns None during the closing minute itself, when the window is
        already ending and the notification can go out immediately.
        """
        tz = ZoneInfo(preferences.quiet_hours_timezone)
        local_now = as_utc(now).astimezone(tz)
        hours, minutes = (int(part) for part in preferences.quiet_hours_end.split(":"))

        candidate = local_now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
        this_minute = local_now.replace(second=0, microsecond=0)
        if candidate == this_minute:
            return None
        if candidate < local_now:
            candidate = candidate + timedelta(days=1)
        return as_utc(candidate)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def deliver_notification(self, notification: Notification) -> Notification:
        """
        Push the notification through its email/push channels.

        Channels run concurrently and fail independently. In-app delivery is
        the persisted row itself.
        """
        methods = set(notification.delivery_method or [])
        deliveries = []

        if DeliveryMethod.EMAIL.value in methods and not notification.email_sent:
            deliveries.append(self._deliver_via(notification, DeliveryMethod.EMAIL))

        if DeliveryMethod.PUSH.value in methods and not notification.push_sent:
            deliveries.append(self._deliver_via(notification, DeliveryMethod.PUSH))

        if deliveries:
            await asyncio.gather(*deliveries)
            await self.db.flush()

        return notification

    async def _deliver_via(self, notification: Notification, channel: DeliveryMethod) -> None:
        payload = {
            "recipientId": str(notification.recipient_id),
            "title": notification.title,
            "message": notification.message,
        }
        sender = self.email_sender if channel is DeliveryMethod.EMAIL else self.push_sender

        try:
            await sender.send(payload)
        except Exception as e:
            logger.error(
                f"Failed to send {channel.value} notification {notification.id}: {e}",
                exc_info=True,
            )
            return

        sent_at = utc_now()
        if channel is DeliveryMethod.EMAIL:
            notification.email_sent = True
            notification.email_sent_at = sent_at
        else:
            notification.push_sent = True
            notification.push_sent_at = sent_at

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def process_scheduled_notifications(self) -> int:
        """Deliver notifications whose scheduled time has come."""
        now = utc_now()
        result = await self.db.execute(
            select(Notification)
            .where(Notification.scheduled_for.is_not(None))
            .where(Notification.scheduled_for <= now)
            .where(Notification.is_deleted.is_(False))
        )
        notifications = result.scalars().all()

        processed = 0
        for notification in notifications:
            try:
                await self.deliver_notification(notification)
                notification.scheduled_for = None
                await self.db.flush()
                processed += 1
            except Exception as e:
                logger.error(f"Error delivering scheduled notification {notification.id}: {e}")
                continue

        logger.info(f"Processed {processed} scheduled notifications")
        return processed

    async def cleanup_expired_notifications(self) -> int:
        """Hard-delete notifications past their expiry."""
        result = await self.db.execute(
            delete(Notification)
            .where(Notification.expires_at < utc_now())
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount or 0
        logger.info(f"Deleted {deleted} expired notifications")
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_user_notifications(
        self,
        user_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
        unread_only: bool = False,
        type: Optional[str] = None,
    ) -> List[Notification]:
        """Non-deleted notifications for a user, newest first."""
        stmt = (
            select(Notification)
            .where(Notification.recipient_id == user_id)
            .where(Notification.is_deleted.is_(False))
        )
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        if type:
            stmt = stmt.where(Notification.type == type)

        result = await self.db.execute(
            stmt.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def mark_as_read(
        self,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Optional[Notification]:
        notification = await self._get_owned(notification_id, user_id)
        if notification:
            notification.is_read = True
            notification.read_at = utc_now()
            await self.db.flush()
        return notification

    async def mark_all_as_read(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.recipient_id == user_id)
            .where(Notification.is_read.is_(False))
            .where(Notification.is_deleted.is_(False))
            .values(is_read=True, read_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete_notification(
        self,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Optional[Notification]:
        """Soft delete."""
        notification = await self._get_owned(notification_id, user_id)
        if notification:
            notification.is_deleted = True
            await self.db.flush()
        return notification

    async def get_unread_count(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id))
            .where(Notification.recipient_id == user_id)
            .where(Notification.is_read.is_(False))
            .where(Notification.is_deleted.is_(False))
        )
        return result.scalar() or 0

    async def _get_owned(
        self,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Optional[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.id == notification_id)
            .where(Notification.recipient_id == user_id)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    async def get_or_create_preferences(self, user_id: uuid.UUID) -> NotificationPreferences:
        result = await self.db.execute(
            select(NotificationPreferences).where(NotificationPreferences.user_id == user_id)
        )
        preferences = result.scalar_one_or_none()
        if preferences:
            return preferences

        preferences = NotificationPreferences(user_id=user_id)
        self.db.add(preferences)
        await self.db.flush()
        logger.debug(f"Created default notification preferences for {user_id}")
        return preferences

    async def get_preferences(self, user_id: uuid.UUID) -> NotificationPreferences:
        """Preferences for a user; defaults are created on first access."""
        return await self.get_or_create_preferences(user_id)

    async def update_preferences(
        self,
        user_id: uuid.UUID,
        changes: Dict[str, Any],
    ) -> NotificationPreferences:
        """
        Apply a partial update.

        `preferences` is merged per category/channel; `quiet_hours` accepts
        enabled/start_time/end_time/timezone.
        """
        preferences = await self.get_or_create_preferences(user_id)

        channel_changes = changes.get("preferences")
        if channel_changes:
            merged = {key: dict(value) for key, value in (preferences.preferences or {}).items()}
            for category, channels in channel_changes.items():
                try:
                    category = NotificationCategory(category).value
                    updates = {DeliveryMethod(ch).value: bool(on) for ch, on in channels.items()}
                except ValueError as e:
                    raise ServiceError(f"Invalid notification preferences: {e}")
                merged.setdefault(category, {}).update(updates)
            # Reassign so the JSON column is marked dirty
            preferences.preferences = merged

        for field in ("daily_digest", "weekly_digest", "marketing_emails"):
            if changes.get(field) is not None:
                setattr(preferences, field, bool(changes[field]))

        quiet_hours = changes.get("quiet_hours") or {}
        if quiet_hours.get("enabled") is not None:
            preferences.quiet_hours_enabled = bool(quiet_hours["enabled"])
        for key, attr in (("start_time", "quiet_hours_start"), ("end_time", "quiet_hours_end")):
            value = quiet_hours.get(key)
            if value is not None:
                if not HHMM_PATTERN.match(value):
                    raise ServiceError("Invalid time format. Use HH:MM format.")
                setattr(preferences, attr, value)
        if quiet_hours.get("timezone"):
            try:
                ZoneInfo(quiet_hours["timezone"])
            except (ZoneInfoNotFoundError, ValueError):
                raise ServiceError(f"Unknown timezone: {quiet_hours['timezone']}")
            preferences.quiet_hours_timezone = quiet_hours["timezone"]

        if changes.get("max_daily_notifications") is not None:
            preferences.max_daily_notifications = _bounded(changes["max_daily_notifications"], 1, 100)
        if changes.get("max_hourly_notifications") is not None:
            preferences.max_hourly_notifications = _bounded(changes["max_hourly_notifications"], 1, 20)

        await self.db.flush()
        return preferences

    # ------------------------------------------------------------------
    # Fixed-template helpers
    # ------------------------------------------------------------------

    async def notify_new_match(
        self,
        recipient_id: uuid.UUID,
        matched_user_id: uuid.UUID,
        matched_user_name: str,
    ) -> Optional[Notification]:
        return await self.send_notification(
            recipient_id,
            NotificationType.MATCH.value,
            "New Match! 🎉",
            f"You have a new match with {matched_user_name}! Start a conversation now.",
            sender_id=matched_user_id,
            action_url=f"/profile/{matched_user_id}",
            action_text="View Profile",
            priority=NotificationPriority.HIGH.value,
            delivery_method=[DeliveryMethod.IN_APP.value, DeliveryMethod.EMAIL.value],
            data={"matchedUserId": str(matched_user_id), "matchedUserName": matched_user_name},
        )

    async def notify_new_message(
        self,
        recipient_id: uuid.UUID,
        sender_id: uuid.UUID,
        sender_name: str,
        preview: str,
    ) -> Optional[Notification]:
        body = preview[:97] + "..." if len(preview) > 100 else preview
        return await self.send_notification(
            recipient_id,
            NotificationType.MESSAGE.value,
            f"New message from {sender_name}",
            body,
            sender_id=sender_id,
            action_url=f"/chat/{sender_id}",
            action_text="Reply",
            priority=NotificationPriority.MEDIUM.value,
            delivery_method=[DeliveryMethod.IN_APP.value, DeliveryMethod.PUSH.value],
            data={"senderId": str(sender_id), "senderName": sender_name, "preview": preview},
        )

    async def notify_interest(
        self,
        recipient_id: uuid.UUID,
        sender_id: uuid.UUID,
        sender_name: str,
        kind: str,
    ) -> Optional[Notification]:
        """kind is one of sent / received / accepted / declined."""
        messages = {
            "sent": f"You sent an interest to {sender_name}",
            "received": f"{sender_name} is interested in your profile!",
            "accepted": f"{sender_name} accepted your interest! 🎉",
            "declined": f"{sender_name} declined your interest",
        }
        priorities = {
            "sent": NotificationPriority.LOW,
            "received": NotificationPriority.HIGH,
            "accepted": NotificationPriority.HIGH,
            "declined": NotificationPriority.MEDIUM,
        }
        if kind not in messages:
            raise ValueError(f"Unknown interest notification kind: {kind}")

        if kind in ("received", "accepted"):
            channels = [DeliveryMethod.IN_APP.value, DeliveryMethod.EMAIL.value]
        else:
            channels = [DeliveryMethod.IN_APP.value]

        return await self.send_notification(
            recipient_id,
            f"interest_{kind}",
            "Interest Update",
            messages[kind],
            sender_id=recipient_id if kind == "sent" else sender_id,
            action_url=f"/profile/{sender_id}",
            action_text="View Profile" if kind == "received" else "View",
            priority=priorities[kind].value,
            delivery_method=channels,
            data={"senderId": str(sender_id), "senderName": sender_name, "interestType": kind},
        )

    async def notify_profile_view(
        self,
        recipient_id: uuid.UUID,
        viewer_id: uuid.UUID,
        viewer_name: str,
    ) -> Optional[Notification]:
        return await self.send_notification(
            recipient_id,
            NotificationType.PROFILE_VIEW.value,
            "Profile View",
            f"{viewer_name} viewed your profile",
            sender_id=viewer_id,
            action_url=f"/profile/{viewer_id}",
            action_text="View Back",
            priority=NotificationPriority.LOW.value,
            delivery_method=[DeliveryMethod.IN_APP.value],
            data={"viewerId": str(viewer_id), "viewerName": viewer_name},
        )

    async def notify_system(
        self,
        recipient_id: uuid.UUID,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        priority: str = NotificationPriority.MEDIUM.value,
    ) -> Optional[Notification]:
        return await self.send_notification(
            recipient_id,
            NotificationType.SYSTEM.value,
            title,
            message,
            action_url=action_url,
            action_text="View Details" if action_url else None,
            priority=priority,
            delivery_method=[DeliveryMethod.IN_APP.value, DeliveryMethod.EMAIL.value],
        )


def _bounded(value: int, low: int, high: int) -> int:
    value = int(value)
    if value < low or value > high:
        raise ServiceError(f"Value must be between {low} and {high}")
    return value
