"""
Interest Endpoints.
Send, answer and browse interests for the calling user.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from app.api.deps import get_current_user_id, get_interest_service
from app.fsm.states import InterestPriority, InterestAction
from app.services import InterestService

router = APIRouter()
logger = logging.getLogger(__name__)


class SendInterestRequest(BaseModel):
    to_user_id: uuid.UUID = Field(alias="toUserId")
    message: Optional[str] = Field(None, max_length=500)
    priority: InterestPriority = InterestPriority.NORMAL

    model_config = {"populate_by_name": True}


class RespondInterestRequest(BaseModel):
    action: InterestAction
    response_message: Optional[str] = Field(None, alias="responseMessage", max_length=500)

    model_config = {"populate_by_name": True}


def _page(result: dict) -> dict:
    return {
        "interests": [i.to_dict() for i in result["interests"]],
        "pagination": result["pagination"],
    }


@router.post("", status_code=201)
async def send_interest(
    request: SendInterestRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: InterestService = Depends(get_interest_service),
):
    interest = await service.send_interest(
        user_id,
        request.to_user_id,
        message=request.message,
        priority=request.priority.value,
    )
    return {"success": True, "interest": interest.to_dict()}


@router.get("")
async def list_interests(
    type: str = Query("pending"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: InterestService = Depends(get_interest_service),
):
    """Pending (default), sent, or all received interests."""
    if type == "pending":
        return _page(await service.get_pending_interests(user_id, page, limit))
    if type == "sent":
        return _page(await service.get_sent_interests(user_id, page, limit))
    if type == "received":
        interests = await service.get_received_interests(user_id)
        return {"interests": [i.to_dict() for i in interests]}

    raise HTTPException(status_code=400, detail=f"Invalid interest type: {type}")


@router.get("/mutual")
async def list_mutual_interests(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: InterestService = Depends(get_interest_service),
):
    interests = await service.get_mutual_interests(user_id)
    return {"interests": [i.to_dict() for i in interests]}


@router.get("/stats")
async def interest_stats(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: InterestService = Depends(get_interest_service),
):
    return await service.get_interest_stats(user_id)


@router.post("/{interest_id}/respond")
async def respond_to_interest(
    interest_id: uuid.UUID,
    request: RespondInterestRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: InterestService = Depends(get_interest_service),
):
    interest = await service.respond_to_interest(
        interest_id,
        user_id,
        request.action.value,
        response_message=request.response_message,
    )
    return {"success": True, "interest": interest.to_dict()}


@router.post("/{interest_id}/withdraw")
async def withdraw_interest(
    interest_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: InterestService = Depends(get_interest_service),
):
    interest = await service.withdraw_interest(interest_id, user_id)
    return {"success": True, "interest": interest.to_dict()}


@router.post("/{interest_id}/read")
async def mark_interest_read(
    interest_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: InterestService = Depends(get_interest_service),
):
    interest = await service.mark_interest_as_read(interest_id, user_id)
    return {"success": True, "interest": interest.to_dict()}
