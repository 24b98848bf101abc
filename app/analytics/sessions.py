"""
User analytics - sessions, identified profiles, matrimony-specific actions and segments.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List

from app.analytics.funnels import FunnelTracker
from app.analytics.recorder import AnalyticsRecorder
from app.timeutils import utc_now, as_utc

logger = logging.getLogger(__name__)

SUBSCRIPTION_TIERS = ("free", "premium", "gold")
PROFILE_ACTIONS = ("view", "like", "interest_sent", "message_sent")
SUBSCRIPTION_EVENTS = ("upgrade_viewed", "upgrade_started", "upgrade_completed", "cancelled")
CHAT_ACTIONS = ("chat_opened", "message_sent", "message_received", "chat_closed")

_MOBILE_RE = re.compile(r"Mobile|Android|iPhone|iPad")


@dataclass(frozen=True)
class DeviceInfo:
    user_agent: str
    device_type: str
    browser: str
    os: str

    @classmethod
    def from_user_agent(cls, user_agent: Optional[str]) -> "DeviceInfo":
        if not user_agent:
            return cls(user_agent="server", device_type="desktop", browser="unknown", os="unknown")

        device_type = "desktop"
        if _MOBILE_RE.search(user_agent):
            device_type = "tablet" if "iPad" in user_agent else "mobile"

        return cls(
            user_agent=user_agent,
            device_type=device_type,
            browser=detect_browser(user_agent),
            os=detect_os(user_agent),
        )


def detect_browser(user_agent: str) -> str:
    # Edge and Chrome agents also carry the Chrome and Safari tokens
    if "Edg/" in user_agent or "Edge/" in user_agent:
        return "Edge"
    if "Chrome" in user_agent:
        return "Chrome"
    if "Firefox" in user_agent:
        return "Firefox"
    if "Safari" in user_agent:
        return "Safari"
    return "Unknown"


def detect_os(user_agent: str) -> str:
    if "Windows" in user_agent:
        return "Windows"
    if "Mac OS" in user_agent:
        return "macOS"
    if "Android" in user_agent:
        return "Android"
    if "Linux" in user_agent:
        return "Linux"
    if "iPhone" in user_agent or "iPad" in user_agent:
        return "iOS"
    return "Unknown"


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    email: str
    registration_date: datetime
    subscription: str = "free"
    demographics: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UserAction:
    action_type: str
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    page_url: str = ""
    element_id: Optional[str] = None


@dataclass
class UserSession:
    session_id: str
    start_time: datetime
    device_info: DeviceInfo
    user_id: Optional[str] = None
    end_time: Optional[datetime] = None
    page_views: int = 0
    last_page_url: str = ""
    actions: List[UserAction] = field(default_factory=list)


class UserAnalytics:
    """Tracks sessions and feeds user events and funnel progress into the recorder."""

    def __init__(self, recorder: AnalyticsRecorder, funnels: FunnelTracker):
        self.recorder = recorder
        self.funnels = funnels
        self.sessions: Dict[str, UserSession] = {}
        self.profiles: Dict[str, UserProfile] = {}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def start_session(self, user_agent: Optional[str] = None, now: Optional[datetime] = None) -> str:
        now = now or utc_now()
        session_id = f"session-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"
        self.sessions[session_id] = UserSession(
            session_id=session_id,
            start_time=now,
            device_info=DeviceInfo.from_user_agent(user_agent),
        )
        return session_id

    def get_session(self, session_id: str) -> UserSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise KeyError(f"Session '{session_id}' not found")
        return session

    def end_session(self, session_id: str) -> None:
        session = self.sessions.get(session_id)
        if session is None or session.end_time is not None:
            return

        session.end_time = utc_now()
        duration_ms = int((as_utc(session.end_time) - as_utc(session.start_time)).total_seconds() * 1000)

        self.recorder.track_user_event(
            "session_end",
            {
                "sessionId": session.session_id,
                "userId": session.user_id,
                "duration": duration_ms,
                "pageViews": session.page_views,
                "actions": len(session.actions),
                "deviceType": session.device_info.device_type,
            },
            session_id=session.session_id,
            user_id=session.user_id,
        )

    def identify_user(self, session_id: str, profile: UserProfile) -> None:
        if profile.subscription not in SUBSCRIPTION_TIERS:
            raise ValueError(f"Unknown subscription tier: {profile.subscription}")

        self.profiles[profile.user_id] = profile
        session = self.sessions.get(session_id)
        if session is not None:
            session.user_id = profile.user_id

        self.recorder.track_user_event(
            "user_identified",
            {
                "userId": profile.user_id,
                "subscription": profile.subscription,
                "demographics": profile.demographics,
            },
            session_id=session_id,
            user_id=profile.user_id,
        )

    # ------------------------------------------------------------------
    # Page views and actions
    # ------------------------------------------------------------------

    def track_page_view(
        self,
        session_id: str,
        page_name: str,
        page_url: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        session = self.get_session(session_id)
        session.page_views += 1
        session.last_page_url = page_url

        self.recorder.track_user_event(
            "page_view",
            {"pageName": page_name, "pageUrl": page_url, "sessionId": session_id, **(metadata or {})},
            session_id=session_id,
            user_id=session.user_id,
            page_url=page_url,
        )
        self.funnels.check_funnel_progression(session.user_id, url=page_url)

    def track_action(
        self,
        session_id: str,
        action_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        element_id: Optional[str] = None,
    ) -> UserAction:
        session = self.get_session(session_id)
        action = UserAction(
            action_type=action_type,
            timestamp=utc_now(),
            metadata=dict(metadata or {}),
            page_url=session.last_page_url,
            element_id=element_id,
        )
        session.actions.append(action)

        self.recorder.track_user_event(
            action_type,
            {**action.metadata, "elementId": element_id, "sessionId": session_id},
            session_id=session_id,
            user_id=session.user_id,
            page_url=session.last_page_url,
        )
        self.funnels.check_funnel_progression(session.user_id, action=action_type)
        return action

    def track_profile_action(self, session_id: str, action: str, target_profile_id: str) -> None:
        if action not in PROFILE_ACTIONS:
            raise ValueError(f"Unknown profile action: {action}")

        self.track_action(
            session_id,
            f"profile_{action}",
            {"targetProfileId": target_profile_id, "category": "profile_interaction"},
        )

        user_id = self.sessions[session_id].user_id
        if user_id and action in ("interest_sent", "message_sent"):
            self.recorder.track_conversion(f"profile_{action}", "engagement", 1, user_id=user_id)

    def track_search_action(
        self,
        session_id: str,
        search_type: str,
        filters: Dict[str, Any],
        results_count: int,
    ) -> None:
        self.track_action(
            session_id,
            "search_performed",
            {
                "searchType": search_type,
                "filters": filters,
                "resultsCount": results_count,
                "category": "search",
            },
        )

    def track_subscription_event(
        self,
        session_id: str,
        event: str,
        plan: Optional[str] = None,
        amount: Optional[float] = None,
    ) -> None:
        if event not in SUBSCRIPTION_EVENTS:
            raise ValueError(f"Unknown subscription event: {event}")

        self.track_action(
            session_id,
            f"subscription_{event}",
            {"plan": plan, "amount": amount, "category": "subscription"},
        )

        if event == "upgrade_completed" and plan and amount:
            self.recorder.track_conversion(
                "subscription_purchase",
                "subscription",
                1,
                value=amount,
                user_id=self.sessions[session_id].user_id,
            )

    def track_chat_interaction(
        self,
        session_id: str,
        action: str,
        chat_id: str,
        message_count: Optional[int] = None,
    ) -> None:
        if action not in CHAT_ACTIONS:
            raise ValueError(f"Unknown chat action: {action}")

        # Actions already carrying the chat_ prefix are not doubled
        action_type = action if action.startswith("chat_") else f"chat_{action}"
        self.track_action(
            session_id,
            action_type,
            {"chatId": chat_id, "messageCount": message_count, "category": "communication"},
        )

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def get_user_journey(self, user_id: str) -> List[UserAction]:
        user_sessions = sorted(
            (s for s in self.sessions.values() if s.user_id == user_id),
            key=lambda s: as_utc(s.start_time),
        )
        return [action for session in user_sessions for action in session.actions]

    def get_user_segments(self, now: Optional[datetime] = None) -> Dict[str, List[UserProfile]]:
        now = as_utc(now or utc_now())
        seven_days_ago = now - timedelta(days=7)
        thirty_days_ago = now - timedelta(days=30)

        segments: Dict[str, List[UserProfile]] = {f"{tier}_users": [] for tier in SUBSCRIPTION_TIERS}
        segments.update(new_users=[], active_users=[], churned_users=[])

        for profile in self.profiles.values():
            segments[f"{profile.subscription}_users"].append(profile)

            if as_utc(profile.registration_date) > seven_days_ago:
                segments["new_users"].append(profile)

            starts = [as_utc(s.start_time) for s in self.sessions.values() if s.user_id == profile.user_id]
            if not starts:
                continue

            last_activity = max(starts)
            if last_activity > seven_days_ago:
                segments["active_users"].append(profile)
            elif last_activity < thirty_days_ago:
                segments["churned_users"].append(profile)

        return segments
