"""
Notification Endpoints.
Inbox, read state and preferences for the calling user; admin send.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.deps import get_current_user_id, get_notification_service, verify_admin_key
from app.fsm.states import NotificationType, NotificationPriority, DeliveryMethod
from app.services import NotificationService
from app.services.exceptions import NotificationNotFoundError

router = APIRouter()
logger = logging.getLogger(__name__)


class QuietHoursRequest(BaseModel):
    enabled: Optional[bool] = None
    start_time: Optional[str] = Field(None, alias="startTime")
    end_time: Optional[str] = Field(None, alias="endTime")
    timezone: Optional[str] = None

    model_config = {"populate_by_name": True}


class UpdatePreferencesRequest(BaseModel):
    preferences: Optional[Dict[str, Dict[str, bool]]] = None
    daily_digest: Optional[bool] = Field(None, alias="dailyDigest")
    weekly_digest: Optional[bool] = Field(None, alias="weeklyDigest")
    marketing_emails: Optional[bool] = Field(None, alias="marketingEmails")
    quiet_hours: Optional[QuietHoursRequest] = Field(None, alias="quietHours")
    max_daily_notifications: Optional[int] = Field(None, alias="maxDailyNotifications")
    max_hourly_notifications: Optional[int] = Field(None, alias="maxHourlyNotifications")

    model_config = {"populate_by_name": True}


class SendNotificationRequest(BaseModel):
    recipient_id: uuid.UUID = Field(alias="recipientId")
    sender_id: Optional[uuid.UUID] = Field(None, alias="senderId")
    type: NotificationType
    title: str = Field(max_length=100)
    message: str = Field(max_length=500)
    action_url: Optional[str] = Field(None, alias="actionUrl")
    action_text: Optional[str] = Field(None, alias="actionText")
    priority: NotificationPriority = NotificationPriority.MEDIUM
    data: Optional[Dict[str, Any]] = None
    delivery_method: Optional[List[DeliveryMethod]] = Field(None, alias="deliveryMethod")
    scheduled_for: Optional[datetime] = Field(None, alias="scheduledFor")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")

    model_config = {"populate_by_name": True}


@router.get("")
async def list_notifications(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = Query(False, alias="unreadOnly"),
    type: Optional[NotificationType] = Query(None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    notifications = await service.get_user_notifications(
        user_id,
        limit=limit,
        offset=offset,
        unread_only=unread_only,
        type=type.value if type else None,
    )
    unread_count = await service.get_unread_count(user_id)
    return {
        "notifications": [n.to_dict() for n in notifications],
        "unreadCount": unread_count,
    }


@router.post("", status_code=201)
async def send_notification(
    request: SendNotificationRequest,
    service: NotificationService = Depends(get_notification_service),
    _: None = Depends(verify_admin_key),
):
    notification = await service.send_notification(
        request.recipient_id,
        request.type.value,
        request.title,
        request.message,
        sender_id=request.sender_id,
        action_url=request.action_url,
        action_text=request.action_text,
        priority=request.priority.value,
        data=request.data,
        delivery_method=[m.value for m in request.delivery_method] if request.delivery_method else None,
        scheduled_for=request.scheduled_for,
        expires_at=request.expires_at,
    )
    if notification is None:
        return {"success": True, "suppressed": True, "notification": None}
    return {"success": True, "suppressed": False, "notification": notification.to_dict()}


@router.post("/read-all")
async def mark_all_read(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    updated = await service.mark_all_as_read(user_id)
    return {"success": True, "updated": updated}


@router.get("/preferences")
async def get_preferences(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    preferences = await service.get_preferences(user_id)
    return preferences.to_dict()


@router.put("/preferences")
async def update_preferences(
    request: UpdatePreferencesRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    preferences = await service.update_preferences(user_id, request.model_dump(exclude_none=True))
    return preferences.to_dict()


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    notification = await service.mark_as_read(notification_id, user_id)
    if notification is None:
        raise NotificationNotFoundError("Notification not found")
    return {"success": True, "notification": notification.to_dict()}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    notification = await service.delete_notification(notification_id, user_id)
    if notification is None:
        raise NotificationNotFoundError("Notification not found")
    return {"success": True}
