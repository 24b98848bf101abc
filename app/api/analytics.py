"""
Analytics Endpoints.
Client-side ingestion, user sessions and admin reports.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field

from app.analytics import AnalyticsRecorder, FunnelTracker, UserAnalytics, UserProfile
from app.analytics.recorder import UserEvent, record_to_dict
from app.api.deps import get_analytics, get_funnels, get_user_analytics, verify_admin_key

router = APIRouter()
logger = logging.getLogger(__name__)


class IngestRequest(BaseModel):
    type: str
    data: Dict[str, Any]
    timestamp: Optional[str] = None


class StartSessionRequest(BaseModel):
    user_agent: Optional[str] = Field(None, alias="userAgent")

    model_config = {"populate_by_name": True}


class IdentifyRequest(BaseModel):
    user_id: str = Field(alias="userId")
    email: str
    registration_date: datetime = Field(alias="registrationDate")
    subscription: str = "free"
    demographics: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class PageViewRequest(BaseModel):
    page_name: str = Field(alias="pageName")
    page_url: str = Field(alias="pageUrl")
    metadata: Optional[Dict[str, Any]] = None

    model_config = {"populate_by_name": True}


class ActionRequest(BaseModel):
    action_type: str = Field(alias="actionType")
    metadata: Optional[Dict[str, Any]] = None
    element_id: Optional[str] = Field(None, alias="elementId")

    model_config = {"populate_by_name": True}


@router.post("")
async def ingest(
    request: IngestRequest,
    recorder: AnalyticsRecorder = Depends(get_analytics),
    funnels: FunnelTracker = Depends(get_funnels),
):
    if not request.type or not request.data:
        raise HTTPException(status_code=400, detail="Missing required fields: type, data")

    try:
        record = recorder.ingest(request.type, request.data, request.timestamp)
    except (KeyError, ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid analytics payload: {e}")

    advanced = []
    if isinstance(record, UserEvent) and record.user_id:
        if record.event_type == "page_view":
            advanced = funnels.check_funnel_progression(record.user_id, url=record.page_url)
        else:
            advanced = funnels.check_funnel_progression(record.user_id, action=record.event_type)

    logger.debug(f"[Analytics] ingested {request.type}")
    return {"success": True, "funnelsAdvanced": advanced}


def _session_call(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/sessions", status_code=201)
async def start_session(
    request: StartSessionRequest,
    user_agent: Optional[str] = Header(None),
    user_analytics: UserAnalytics = Depends(get_user_analytics),
):
    session_id = user_analytics.start_session(request.user_agent or user_agent)
    return {"sessionId": session_id}


@router.post("/sessions/{session_id}/identify")
async def identify_session(
    session_id: str,
    request: IdentifyRequest,
    user_analytics: UserAnalytics = Depends(get_user_analytics),
):
    _session_call(user_analytics.get_session, session_id)
    profile = UserProfile(
        user_id=request.user_id,
        email=request.email,
        registration_date=request.registration_date,
        subscription=request.subscription,
        demographics=request.demographics,
    )
    _session_call(user_analytics.identify_user, session_id, profile)
    return {"success": True}


@router.post("/sessions/{session_id}/page-views")
async def track_page_view(
    session_id: str,
    request: PageViewRequest,
    user_analytics: UserAnalytics = Depends(get_user_analytics),
):
    _session_call(
        user_analytics.track_page_view, session_id, request.page_name, request.page_url, request.metadata
    )
    return {"success": True}


@router.post("/sessions/{session_id}/actions")
async def track_action(
    session_id: str,
    request: ActionRequest,
    user_analytics: UserAnalytics = Depends(get_user_analytics),
):
    _session_call(
        user_analytics.track_action,
        session_id,
        request.action_type,
        metadata=request.metadata,
        element_id=request.element_id,
    )
    return {"success": True}


@router.post("/sessions/{session_id}/end")
async def end_session(
    session_id: str,
    user_analytics: UserAnalytics = Depends(get_user_analytics),
):
    _session_call(user_analytics.get_session, session_id)
    user_analytics.end_session(session_id)
    return {"success": True}


@router.get("")
async def get_analytics_report(
    type: str = Query(...),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    funnel: Optional[str] = Query(None),
    recorder: AnalyticsRecorder = Depends(get_analytics),
    funnels: FunnelTracker = Depends(get_funnels),
    user_analytics: UserAnalytics = Depends(get_user_analytics),
    _: None = Depends(verify_admin_key),
):
    if type == "performance":
        return recorder.get_performance_snapshot()

    if type == "export":
        if not start_date or not end_date:
            raise HTTPException(status_code=400, detail="Start date and end date required for export")
        exported = recorder.export_analytics(start_date, end_date)
        return {kind: [record_to_dict(r) for r in records] for kind, records in exported.items()}

    if type == "funnel":
        if not funnel:
            raise HTTPException(status_code=400, detail="Funnel name required")
        try:
            return funnels.get_funnel_analytics(funnel)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Funnel '{funnel}' not found")

    if type == "segments":
        segments = user_analytics.get_user_segments()
        return {name: [record_to_dict(p) for p in profiles] for name, profiles in segments.items()}

    raise HTTPException(status_code=400, detail="Invalid analytics type")
