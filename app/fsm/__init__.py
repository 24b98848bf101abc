"""FSM package for interest state and notification enums."""

from app.fsm.states import (
    InterestStatus,
    InterestPriority,
    InterestAction,
    NotificationType,
    NotificationCategory,
    DeliveryMethod,
    NotificationPriority,
    NOTIFICATION_CATEGORIES,
)
from app.fsm.machine import can_transition

__all__ = [
    "InterestStatus",
    "InterestPriority",
    "InterestAction",
    "NotificationType",
    "NotificationCategory",
    "DeliveryMethod",
    "NotificationPriority",
    "NOTIFICATION_CATEGORIES",
    "can_transition",
]
