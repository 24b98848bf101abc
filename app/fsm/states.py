"""
State and enum definitions for interests and notifications.
"""

from enum import Enum


class InterestStatus(str, Enum):
    """
    Interest lifecycle states.
    SENT is the only non-terminal state.
    """

    SENT = "sent"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    WITHDRAWN = "withdrawn"

    @property
    def is_terminal(self) -> bool:
        return self is not InterestStatus.SENT


class InterestPriority(str, Enum):
    """Priority attached by the sender of an interest."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Sort rank, higher first."""
        ranks = {
            InterestPriority.LOW: 0,
            InterestPriority.NORMAL: 1,
            InterestPriority.HIGH: 2,
        }
        return ranks[self]


class InterestAction(str, Enum):
    """Responses a recipient can give to an interest."""

    ACCEPT = "accept"
    DECLINE = "decline"


class NotificationType(str, Enum):
    """All notification types understood by the dispatcher."""

    MATCH = "match"
    MESSAGE = "message"
    INTEREST_SENT = "interest_sent"
    INTEREST_RECEIVED = "interest_received"
    INTEREST_ACCEPTED = "interest_accepted"
    INTEREST_DECLINED = "interest_declined"
    PROFILE_VIEW = "profile_view"
    SYSTEM = "system"
    SUBSCRIPTION = "subscription"
    VERIFICATION = "verification"


class NotificationCategory(str, Enum):
    """Preference categories a user can toggle per channel."""

    MATCHES = "matches"
    MESSAGES = "messages"
    INTERESTS = "interests"
    PROFILE_VIEWS = "profileViews"
    SYSTEM = "system"
    SUBSCRIPTION = "subscription"
    VERIFICATION = "verification"


class DeliveryMethod(str, Enum):
    """Delivery channels."""

    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


NOTIFICATION_CATEGORIES: dict[NotificationType, NotificationCategory] = {
    NotificationType.MATCH: NotificationCategory.MATCHES,
    NotificationType.MESSAGE: NotificationCategory.MESSAGES,
    NotificationType.INTEREST_SENT: NotificationCategory.INTERESTS,
    NotificationType.INTEREST_RECEIVED: NotificationCategory.INTERESTS,
    NotificationType.INTEREST_ACCEPTED: NotificationCategory.INTERESTS,
    NotificationType.INTEREST_DECLINED: NotificationCategory.INTERESTS,
    NotificationType.PROFILE_VIEW: NotificationCategory.PROFILE_VIEWS,
    NotificationType.SYSTEM: NotificationCategory.SYSTEM,
    NotificationType.SUBSCRIPTION: NotificationCategory.SUBSCRIPTION,
    NotificationType.VERIFICATION: NotificationCategory.VERIFICATION,
}

# Days a notification stays around before the expiry sweep removes it
NOTIFICATION_EXPIRY_DAYS: dict[NotificationType, int] = {
    NotificationType.MATCH: 30,
    NotificationType.MESSAGE: 7,
    NotificationType.INTEREST_SENT: 14,
    NotificationType.INTEREST_RECEIVED: 14,
    NotificationType.INTEREST_ACCEPTED: 30,
    NotificationType.INTEREST_DECLINED: 7,
    NotificationType.PROFILE_VIEW: 3,
    NotificationType.SYSTEM: 60,
    NotificationType.SUBSCRIPTION: 90,
    NotificationType.VERIFICATION: 30,
}


def _check_exhaustive(table: dict, name: str) -> None:
    missing = set(NotificationType) - set(table)
    if missing:
        raise RuntimeError(
            f"{name} is missing notification types: {sorted(t.value for t in missing)}"
        )


# Adding a NotificationType without a mapping fails at import time
_check_exhaustive(NOTIFICATION_CATEGORIES, "NOTIFICATION_CATEGORIES")
_check_exhaustive(NOTIFICATION_EXPIRY_DAYS, "NOTIFICATION_EXPIRY_DAYS")
