"""
Tests for UserAnalytics sessions and segments.
"""

from datetime import timedelta

import pytest

from app.analytics import AnalyticsRecorder, FunnelTracker, UserAnalytics, UserProfile
from app.analytics.sessions import DeviceInfo
from app.timeutils import utc_now

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148 Safari/604.1"
IPAD = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148 Safari/604.1"
ANDROID_CHROME = "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 Chrome/120.0 Mobile Safari/537.36"
WINDOWS_FIREFOX = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"
WINDOWS_EDGE = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36 Edg/120.0"


@pytest.fixture
def recorder():
    return AnalyticsRecorder(endpoint="", development=True)


@pytest.fixture
def analytics(recorder):
    return UserAnalytics(recorder, FunnelTracker(recorder))


def _profile(user_id="u1", subscription="free", days_ago=30):
    return UserProfile(
        user_id=user_id,
        email=f"{user_id}@example.com",
        registration_date=utc_now() - timedelta(days=days_ago),
        subscription=subscription,
    )


class TestDeviceInfo:
    @pytest.mark.parametrize(
        "user_agent,device,browser,os",
        [
            (IPHONE, "mobile", "Safari", "macOS"),
            (IPAD, "tablet", "Safari", "macOS"),
            (ANDROID_CHROME, "mobile", "Chrome", "Android"),
            (WINDOWS_FIREFOX, "desktop", "Firefox", "Windows"),
            (WINDOWS_EDGE, "desktop", "Edge", "Windows"),
        ],
    )
    def test_parsed_from_user_agent(self, user_agent, device, browser, os):
        info = DeviceInfo.from_user_agent(user_agent)
        assert (info.device_type, info.browser, info.os) == (device, browser, os)

    def test_missing_user_agent(self):
        info = DeviceInfo.from_user_agent(None)
        assert info.user_agent == "server"
        assert info.device_type == "desktop"


class TestSessions:
    def test_session_end_event(self, analytics, recorder):
        session_id = analytics.start_session(IPHONE)
        analytics.track_page_view(session_id, "Home", "/")
        analytics.track_action(session_id, "button_click", element_id="cta")
        analytics.end_session(session_id)

        end = recorder.events[-1]
        assert end.event_type == "session_end"
        assert end.properties["pageViews"] == 1
        assert end.properties["actions"] == 1
        assert end.properties["deviceType"] == "mobile"
        assert end.properties["duration"] >= 0

    def test_end_session_once(self, analytics, recorder):
        session_id = analytics.start_session()
        analytics.end_session(session_id)
        analytics.end_session(session_id)
        assert [e.event_type for e in recorder.events] == ["session_end"]

    def test_unknown_session(self, analytics):
        with pytest.raises(KeyError):
            analytics.track_page_view("missing", "Home", "/")

    def test_identify_attaches_user(self, analytics, recorder):
        session_id = analytics.start_session()
        analytics.identify_user(session_id, _profile())

        assert analytics.sessions[session_id].user_id == "u1"
        assert recorder.events[-1].event_type == "user_identified"

    def test_anonymous_session_does_not_advance_funnels(self, analytics, recorder):
        session_id = analytics.start_session()
        analytics.track_page_view(session_id, "Home", "/")
        assert recorder.conversions == []


class TestFunnelIntegration:
    def test_page_views_and_actions_advance_funnel(self, analytics):
        session_id = analytics.start_session()
        analytics.identify_user(session_id, _profile())

        analytics.track_page_view(session_id, "Home", "/")
        analytics.track_page_view(session_id, "Sign up", "/auth/sign-up")
        analytics.track_action(session_id, "email_entered")

        assert analytics.funnels.funnels["registration"].current_step("u1") == 3

    def test_chat_actions_reach_connection_funnel(self, analytics):
        session_id = analytics.start_session()
        analytics.identify_user(session_id, _profile())

        analytics.track_profile_action(session_id, "view", "p2")
        analytics.track_profile_action(session_id, "interest_sent", "p2")
        analytics.track_action(session_id, "interest_accepted")
        analytics.track_chat_interaction(session_id, "chat_opened", "c1")

        assert analytics.funnels.funnels["connection"].current_step("u1") == 4

    def test_profile_interest_is_engagement_conversion(self, analytics, recorder):
        session_id = analytics.start_session()
        analytics.identify_user(session_id, _profile())

        analytics.track_profile_action(session_id, "interest_sent", "p2")

        names = [c.event_name for c in recorder.conversions]
        assert "profile_interest_sent" in names

    def test_subscription_purchase_conversion(self, analytics, recorder):
        session_id = analytics.start_session()
        analytics.identify_user(session_id, _profile(subscription="premium"))

        analytics.track_subscription_event(session_id, "upgrade_completed", plan="gold", amount=2999)

        purchase = [c for c in recorder.conversions if c.event_name == "subscription_purchase"]
        assert len(purchase) == 1
        assert purchase[0].value == 2999
        assert purchase[0].currency == "INR"

    def test_subscription_without_amount_is_not_purchase(self, analytics, recorder):
        session_id = analytics.start_session()
        analytics.identify_user(session_id, _profile())

        analytics.track_subscription_event(session_id, "upgrade_completed", plan="gold")

        assert not [c for c in recorder.conversions if c.event_name == "subscription_purchase"]

    def test_unknown_actions_rejected(self, analytics):
        session_id = analytics.start_session()
        with pytest.raises(ValueError):
            analytics.track_profile_action(session_id, "stalk", "p2")
        with pytest.raises(ValueError):
            analytics.track_subscription_event(session_id, "refund")
        with pytest.raises(ValueError):
            analytics.track_chat_interaction(session_id, "typing", "c1")

    def test_search_action(self, analytics, recorder):
        session_id = analytics.start_session()
        analytics.track_search_action(session_id, "advanced", {"age": "25-30"}, 42)

        event = recorder.events[-1]
        assert event.event_type == "search_performed"
        assert event.properties["resultsCount"] == 42


class TestReports:
    def test_user_journey_in_session_order(self, analytics):
        first = analytics.start_session(now=utc_now() - timedelta(days=1))
        second = analytics.start_session()
        for session_id in (first, second):
            analytics.identify_user(session_id, _profile())

        analytics.track_action(second, "late")
        analytics.track_action(first, "early")

        assert [a.action_type for a in analytics.get_user_journey("u1")] == ["early", "late"]

    def test_segments(self, analytics):
        now = utc_now()

        fresh = analytics.start_session(now=now - timedelta(days=1))
        analytics.identify_user(fresh, _profile("new", "free", days_ago=2))

        idle = analytics.start_session(now=now - timedelta(days=40))
        analytics.identify_user(idle, _profile("old", "gold", days_ago=100))

        lapsing = analytics.start_session(now=now - timedelta(days=10))
        analytics.identify_user(lapsing, _profile("mid", "premium", days_ago=60))

        analytics.profiles["ghost"] = _profile("ghost", "free", days_ago=90)

        segments = analytics.get_user_segments(now=now)

        def ids(name):
            return sorted(p.user_id for p in segments[name])

        assert ids("free_users") == ["ghost", "new"]
        assert ids("premium_users") == ["mid"]
        assert ids("gold_users") == ["old"]
        assert ids("new_users") == ["new"]
        assert ids("active_users") == ["new"]
        assert ids("churned_users") == ["old"]

    def test_invalid_tier(self, analytics):
        session_id = analytics.start_session()
        with pytest.raises(ValueError):
            analytics.identify_user(session_id, _profile(subscription="platinum"))
