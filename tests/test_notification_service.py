"""
Tests for NotificationService.
"""

import pytest
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from sqlalchemy import select, func

from app.models import Notification, NotificationPreferences
from app.services.exceptions import ServiceError, UnknownNotificationTypeError
from app.timeutils import as_utc, utc_now

LATE_EVENING = datetime(2026, 10, 18, 23, 0, tzinfo=timezone.utc)
NEXT_MORNING = datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)


async def _count_notifications(db) -> int:
    result = await db.execute(select(func.count(Notification.id)))
    return result.scalar()


async def _enable_quiet_hours(service, user_id, start="22:00", end="07:00"):
    return await service.update_preferences(
        user_id,
        {"quiet_hours": {"enabled": True, "start_time": start, "end_time": end, "timezone": "UTC"}},
    )


class TestSendNotification:
    """Creation, channel filtering and delivery."""

    @pytest.mark.asyncio
    async def test_creates_default_preferences(self, db, make_user, notification_service):
        user = await make_user()

        notification = await notification_service.send_notification(
            user.id, "system", "Welcome", "Hello there"
        )

        assert notification is not None
        assert notification.delivery_method == ["in_app"]
        prefs = await db.execute(
            select(NotificationPreferences).where(NotificationPreferences.user_id == user.id)
        )
        assert prefs.scalar_one().quiet_hours_enabled is False

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, make_user, notification_service):
        user = await make_user()
        with pytest.raises(UnknownNotificationTypeError, match="Unknown notification type: interest"):
            await notification_service.send_notification(user.id, "interest", "T", "M")

    @pytest.mark.asyncio
    async def test_channels_filtered_by_preferences(self, make_user, notification_service, email_sender, push_sender):
        user = await make_user()

        # messages: email disabled by default
        notification = await notification_service.send_notification(
            user.id, "message", "New message", "Hi",
            delivery_method=["in_app", "email", "push"],
        )

        assert notification.delivery_method == ["in_app", "push"]
        push_sender.send.assert_awaited_once()
        email_sender.send.assert_not_awaited()
        assert notification.push_sent is True
        assert notification.email_sent is False

    @pytest.mark.asyncio
    async def test_suppressed_when_no_channel_allowed(self, db, make_user, notification_service):
        user = await make_user()
        await notification_service.update_preferences(
            user.id, {"preferences": {"interests": {"in_app": False, "email": False}}}
        )

        result = await notification_service.send_notification(
            user.id, "interest_received", "New Interest", "Someone likes you",
            delivery_method=["in_app", "email"],
        )

        assert result is None
        assert await _count_notifications(db) == 0

    @pytest.mark.asyncio
    async def test_default_expiry_by_type(self, make_user, notification_service):
        user = await make_user()
        before = utc_now()

        notification = await notification_service.send_notification(
            user.id, "profile_view", "Profile View", "Someone viewed your profile"
        )

        expected = before + timedelta(days=3)
        assert abs(as_utc(notification.expires_at) - expected) < timedelta(seconds=5)

    @pytest.mark.asyncio
    async def test_channel_failure_is_isolated(self, make_user, notification_service, email_sender, push_sender):
        user = await make_user()
        email_sender.send.side_effect = RuntimeError("smtp down")

        notification = await notification_service.send_notification(
            user.id, "match", "It's a Match!", "You matched",
            delivery_method=["in_app", "email", "push"],
        )

        assert notification is not None
        assert notification.email_sent is False
        assert notification.push_sent is True
        assert notification.push_sent_at is not None

    @pytest.mark.asyncio
    async def test_channel_payload(self, make_user, notification_service, email_sender):
        user = await make_user()

        await notification_service.send_notification(
            user.id, "system", "Maintenance", "Back soon",
            delivery_method=["email"],
        )

        email_sender.send.assert_awaited_once_with(
            {"recipientId": str(user.id), "title": "Maintenance", "message": "Back soon"}
        )

    @pytest.mark.asyncio
    async def test_invalid_channel_rejected(self, db, make_user, notification_service):
        user = await make_user()

        with pytest.raises(ServiceError):
            await notification_service.send_notification(
                user.id, "system", "Hi", "Hello", delivery_method=["in_app", "sms"]
            )
        assert await _count_notifications(db) == 0

    @pytest.mark.asyncio
    async def test_duplicate_channels_collapsed(self, make_user, notification_service, email_sender):
        user = await make_user()

        notification = await notification_service.send_notification(
            user.id, "system", "Hi", "Hello",
            delivery_method=["in_app", "email", "in_app", "email"],
        )

        assert notification.delivery_method == ["in_app", "email"]
        email_sender.send.assert_awaited_once()


class TestQuietHours:
    """Deferral during the recipient's quiet window."""

    @pytest.mark.asyncio
    async def test_deferred_until_quiet_hours_end(self, make_user, notification_service, email_sender):
        user = await make_user()
        await _enable_quiet_hours(notification_service, user.id)

        with patch("app.services.notification_service.utc_now", return_value=LATE_EVENING):
            notification = await notification_service.send_notification(
                user.id, "interest_received", "New Interest", "Hello",
                delivery_method=["in_app", "email"],
            )

        assert as_utc(notification.scheduled_for) == NEXT_MORNING
        email_sender.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_urgent_bypasses_quiet_hours(self, make_user, notification_service, email_sender):
        user = await make_user()
        await _enable_quiet_hours(notification_service, user.id)

        with patch("app.services.notification_service.utc_now", return_value=LATE_EVENING):
            notification = await notification_service.send_notification(
                user.id, "interest_received", "New Interest", "Hello",
                priority="urgent",
                delivery_method=["in_app", "email"],
            )

        assert notification.scheduled_for is None
        email_sender.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_same_day_end(self, make_user, notification_service):
        user = await make_user()
        await _enable_quiet_hours(notification_service, user.id)
        early = datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)

        with patch("app.services.notification_service.utc_now", return_value=early):
            notification = await notification_service.send_notification(
                user.id, "system", "Hi", "Hello"
            )

        assert as_utc(notification.scheduled_for) == NEXT_MORNING

    @pytest.mark.asyncio
    async def test_explicit_schedule_is_kept(self, make_user, notification_service):
        user = await make_user()
        await _enable_quiet_hours(notification_service, user.id)
        later = datetime(2026, 10, 20, 12, 0, tzinfo=timezone.utc)

        with patch("app.services.notification_service.utc_now", return_value=LATE_EVENING):
            notification = await notification_service.send_notification(
                user.id, "system", "Hi", "Hello", scheduled_for=later
            )

        assert as_utc(notification.scheduled_for) == later

    @pytest.mark.asyncio
    async def test_window_boundaries_inclusive(self, make_user, notification_service):
        user = await make_user()
        prefs = await _enable_quiet_hours(notification_service, user.id)

        assert prefs.is_in_quiet_hours(datetime(2026, 10, 18, 22, 0, tzinfo=timezone.utc))
        assert prefs.is_in_quiet_hours(datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc))
        assert not prefs.is_in_quiet_hours(datetime(2026, 10, 19, 7, 1, tzinfo=timezone.utc))
        assert not prefs.is_in_quiet_hours(datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))

    @pytest.mark.asyncio
    async def test_closing_minute_sends_immediately(self, make_user, notification_service, email_sender):
        user = await make_user()
        await _enable_quiet_hours(notification_service, user.id)

        with patch(
            "app.services.notification_service.utc_now",
            return_value=NEXT_MORNING + timedelta(seconds=30),
        ):
            notification = await notification_service.send_notification(
                user.id, "interest_received", "New Interest", "Hello",
                delivery_method=["in_app", "email"],
            )

        assert notification.scheduled_for is None
        email_sender.send.assert_awaited_once()


class TestSweeps:
    @pytest.mark.asyncio
    async def test_scheduled_delivered_once_due(self, make_user, notification_service, email_sender):
        user = await make_user()
        await _enable_quiet_hours(notification_service, user.id)

        with patch("app.services.notification_service.utc_now", return_value=LATE_EVENING):
            notification = await notification_service.send_notification(
                user.id, "interest_received", "New Interest", "Hello",
                delivery_method=["in_app", "email"],
            )
            assert await notification_service.process_scheduled_notifications() == 0

        with patch(
            "app.services.notification_service.utc_now",
            return_value=NEXT_MORNING + timedelta(minutes=5),
        ):
            assert await notification_service.process_scheduled_notifications() == 1
            assert await notification_service.process_scheduled_notifications() == 0

        assert notification.scheduled_for is None
        assert notification.email_sent is True
        email_sender.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, db, make_user, notification_service):
        user = await make_user()
        await notification_service.send_notification(
            user.id, "system", "Old", "Old news", expires_at=utc_now() - timedelta(days=1)
        )
        await notification_service.send_notification(user.id, "system", "New", "Fresh")

        assert await notification_service.cleanup_expired_notifications() == 1
        assert await _count_notifications(db) == 1


class TestInbox:
    @pytest.mark.asyncio
    async def test_read_state(self, make_user, notification_service):
        user = await make_user()
        other = await make_user()
        first = await notification_service.send_notification(user.id, "system", "A", "a")
        await notification_service.send_notification(user.id, "profile_view", "B", "b")

        assert await notification_service.get_unread_count(user.id) == 2

        assert await notification_service.mark_as_read(first.id, other.id) is None
        read = await notification_service.mark_as_read(first.id, user.id)
        assert read.is_read is True
        assert read.read_at is not None

        unread = await notification_service.get_user_notifications(user.id, unread_only=True)
        assert [n.title for n in unread] == ["B"]

        assert await notification_service.mark_all_as_read(user.id) == 1
        assert await notification_service.get_unread_count(user.id) == 0

    @pytest.mark.asyncio
    async def test_soft_delete_and_type_filter(self, make_user, notification_service):
        user = await make_user()
        system = await notification_service.send_notification(user.id, "system", "A", "a")
        await notification_service.send_notification(user.id, "profile_view", "B", "b")

        await notification_service.delete_notification(system.id, user.id)

        remaining = await notification_service.get_user_notifications(user.id)
        assert [n.type for n in remaining] == ["profile_view"]
        assert await notification_service.get_user_notifications(user.id, type="system") == []


class TestPreferences:
    @pytest.mark.asyncio
    async def test_merge_channel_preferences(self, make_user, notification_service):
        user = await make_user()

        prefs = await notification_service.update_preferences(
            user.id, {"preferences": {"matches": {"email": False}}}
        )

        assert prefs.preferences["matches"] == {"in_app": True, "email": False, "push": True}
        assert prefs.should_send_notification("matches", "push") is True
        assert prefs.should_send_notification("matches", "email") is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "changes",
        [
            {"quiet_hours": {"start_time": "25:00"}},
            {"quiet_hours": {"timezone": "Mars/Olympus"}},
            {"max_daily_notifications": 0},
            {"max_hourly_notifications": 21},
            {"preferences": {"matches": {"sms": True}}},
            {"preferences": {"gossip": {"email": True}}},
        ],
    )
    async def test_invalid_updates_rejected(self, make_user, notification_service, changes):
        user = await make_user()
        with pytest.raises(ServiceError):
            await notification_service.update_preferences(user.id, changes)

    @pytest.mark.asyncio
    async def test_scalar_updates(self, make_user, notification_service):
        user = await make_user()
        prefs = await notification_service.update_preferences(
            user.id,
            {"daily_digest": False, "max_daily_notifications": 20, "max_hourly_notifications": 5},
        )
        assert prefs.daily_digest is False
        assert prefs.max_daily_notifications == 20
        assert prefs.max_hourly_notifications == 5


class TestHelpers:
    @pytest.mark.asyncio
    async def test_new_match(self, make_user, notification_service, email_sender):
        user = await make_user()
        other = await make_user("Priya")

        notification = await notification_service.notify_new_match(user.id, other.id, "Priya")

        assert notification.priority == "high"
        assert notification.delivery_method == ["in_app", "email"]
        assert notification.action_url == f"/profile/{other.id}"
        email_sender.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_message_preview_truncated(self, make_user, notification_service):
        user = await make_user()
        sender_id = uuid.uuid4()

        notification = await notification_service.notify_new_message(
            user.id, sender_id, "Ravi", "x" * 150
        )

        assert notification.message == "x" * 97 + "..."
        assert notification.delivery_method == ["in_app", "push"]

    @pytest.mark.asyncio
    async def test_short_message_preview_unchanged(self, make_user, notification_service):
        user = await make_user()
        notification = await notification_service.notify_new_message(
            user.id, uuid.uuid4(), "Ravi", "x" * 100
        )
        assert notification.message == "x" * 100

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kind,priority,channels",
        [
            ("sent", "low", ["in_app"]),
            ("received", "high", ["in_app", "email"]),
            ("accepted", "high", ["in_app", "email"]),
            ("declined", "medium", ["in_app"]),
        ],
    )
    async def test_interest_kinds(self, make_user, notification_service, kind, priority, channels):
        user = await make_user()
        notification = await notification_service.notify_interest(user.id, uuid.uuid4(), "Asha", kind)

        assert notification.type == f"interest_{kind}"
        assert notification.priority == priority
        assert notification.delivery_method == channels

    @pytest.mark.asyncio
    async def test_unknown_interest_kind(self, make_user, notification_service):
        user = await make_user()
        with pytest.raises(ValueError):
            await notification_service.notify_interest(user.id, uuid.uuid4(), "Asha", "ignored")

    @pytest.mark.asyncio
    async def test_profile_view_and_system(self, make_user, notification_service):
        user = await make_user()

        view = await notification_service.notify_profile_view(user.id, uuid.uuid4(), "Kiran")
        system = await notification_service.notify_system(user.id, "Update", "New terms", "/terms")

        assert view.priority == "low"
        assert view.delivery_method == ["in_app"]
        assert system.delivery_method == ["in_app", "email"]
        assert system.action_text == "View Details"
