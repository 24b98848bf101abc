"""
Admin Sweep Endpoints.
Manual triggers for the periodic interest and notification sweeps.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.deps import get_interest_service, get_notification_service, verify_admin_key
from app.services import InterestService, NotificationService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/sweeps/interests")
async def trigger_interest_sweep(
    service: InterestService = Depends(get_interest_service),
    _: None = Depends(verify_admin_key),
):
    """Decline every unanswered interest whose expiry has passed."""
    count = await service.cleanup_expired_interests()
    logger.info(f"Manual interest sweep: {count} expired")
    return {"status": "success", "count": count}


@router.post("/sweeps/scheduled-notifications")
async def trigger_scheduled_notifications(
    service: NotificationService = Depends(get_notification_service),
    _: None = Depends(verify_admin_key),
):
    count = await service.process_scheduled_notifications()
    logger.info(f"Manual scheduled-notification sweep: {count} delivered")
    return {"status": "success", "count": count}


@router.post("/sweeps/expired-notifications")
async def trigger_expired_notifications(
    service: NotificationService = Depends(get_notification_service),
    _: None = Depends(verify_admin_key),
):
    count = await service.cleanup_expired_notifications()
    logger.info(f"Manual expired-notification sweep: {count} deleted")
    return {"status": "success", "count": count}
