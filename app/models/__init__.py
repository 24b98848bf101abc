"""Models package for database models."""

from app.models.user import User
from app.models.interest import Interest
from app.models.match import Match
from app.models.notification import Notification
from app.models.notification_preferences import NotificationPreferences

__all__ = [
    "User",
    "Interest",
    "Match",
    "Notification",
    "NotificationPreferences",
]
