"""
Notification Sweep Workers.

Deliver deferred notifications when due and purge expired ones.
"""

import asyncio
import logging

from app.workers.celery_app import celery_app
from app.database import get_db_context
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


async def sweep_scheduled_notifications() -> int:
    async with get_db_context() as db:
        return await NotificationService(db).process_scheduled_notifications()


async def sweep_expired_notifications() -> int:
    async with get_db_context() as db:
        return await NotificationService(db).cleanup_expired_notifications()


@celery_app.task(bind=True, max_retries=3)
def process_scheduled_notifications(self):
    """Deliver notifications whose scheduled time has passed."""
    try:
        count = asyncio.run(sweep_scheduled_notifications())
        logger.info(f"Delivered {count} scheduled notifications")
        return {"success": True, "count": count}
    except Exception as e:
        logger.error(f"Scheduled notification sweep failed: {e}")
        self.retry(exc=e, countdown=60)


@celery_app.task(bind=True, max_retries=3)
def cleanup_expired_notifications(self):
    """Delete notifications past their expiry."""
    try:
        count = asyncio.run(sweep_expired_notifications())
        logger.info(f"Deleted {count} expired notifications")
        return {"success": True, "count": count}
    except Exception as e:
        logger.error(f"Expired notification sweep failed: {e}")
        self.retry(exc=e, countdown=300)
