"""Services package."""

from app.services.notification_service import NotificationService
from app.services.interest_service import InterestService
from app.services.channels import EmailChannel, PushChannel

__all__ = [
    "NotificationService",
    "InterestService",
    "EmailChannel",
    "PushChannel",
]
