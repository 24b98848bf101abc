"""
Tests for AnalyticsRecorder.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.analytics.recorder import AnalyticsRecorder, determine_severity
from app.timeutils import utc_now

ENDPOINT = "http://analytics.test/collect"


@pytest.fixture
def recorder():
    return AnalyticsRecorder(endpoint="", development=True, max_size=1000, window_minutes=60)


class TestBuffers:
    def test_ring_buffer_evicts_oldest(self, recorder):
        for i in range(1001):
            recorder.record_metric(f"m{i}", i)

        metrics = recorder.metrics
        assert len(metrics) == 1000
        assert metrics[0].name == "m1"
        assert metrics[-1].name == "m1000"

    def test_each_buffer_capped(self):
        small = AnalyticsRecorder(endpoint="", development=True, max_size=3)
        for i in range(5):
            small.track_user_event("click", {"i": i})
            small.track_error(RuntimeError(f"boom {i}"))
            small.track_conversion("signup", "registration", 1, user_id=f"u{i}")

        assert [e.properties["i"] for e in small.events] == [2, 3, 4]
        assert len(small.errors) == 3
        assert [c.user_id for c in small.conversions] == ["u2", "u3", "u4"]

    def test_records_are_immutable(self, recorder):
        metric = recorder.record_metric("lcp", 1200)
        with pytest.raises(Exception):
            metric.value = 1


class TestWebVitals:
    def test_vital_helpers(self, recorder):
        recorder.record_largest_contentful_paint(2500)
        recorder.record_first_input(processing_start=130, start_time=100)
        recorder.record_navigation_timing({"requestStart": 40, "responseStart": 160})

        by_name = {m.name: m for m in recorder.metrics}
        assert by_name["lcp"].value == 2500
        assert by_name["fid"].value == 30
        assert by_name["ttfb"].value == 120
        assert all(m.tags == {"type": "web-vital"} for m in recorder.metrics)

    def test_layout_shift_accumulates_per_session(self, recorder):
        recorder.record_layout_shift("s1", 0.1)
        recorder.record_layout_shift("s1", 0.5, had_recent_input=True)
        recorder.record_layout_shift("s1", 0.05)
        other = recorder.record_layout_shift("s2", 0.2)

        s1_values = [m.value for m in recorder.metrics if m.name == "cls"][:3]
        assert s1_values == pytest.approx([0.1, 0.1, 0.15])
        assert other.value == pytest.approx(0.2)

    def test_navigation_timing_without_fields(self, recorder):
        assert recorder.record_navigation_timing({}) is None
        assert recorder.metrics == []


class TestTracking:
    def test_page_load(self, recorder):
        recorder.track_page_load(
            "home", {"fetchStart": 10, "loadEventEnd": 910, "domContentLoadedEventEnd": 410}
        )
        by_name = {m.name: m for m in recorder.metrics}
        assert by_name["page_load_time"].value == 900
        assert by_name["dom_content_loaded"].value == 400
        assert by_name["page_load_time"].tags == {"page": "home", "type": "page-performance"}

    def test_api_error_also_emits_event(self, recorder):
        recorder.track_api_call("/interests", "POST", 120, 201)
        recorder.track_api_call("/interests", "POST", 80, 429)

        assert len([m for m in recorder.metrics if m.name == "api_response_time"]) == 2
        assert [e.event_type for e in recorder.events] == ["api_error"]
        assert recorder.events[0].properties["status"] == 429

    def test_database_query_truncated(self, recorder):
        recorder.track_database_query("SELECT " + "x" * 500, 12, collection="interests")
        metric = recorder.metrics[0]
        assert len(metric.metadata["query"]) == 100
        assert metric.tags == {"collection": "interests", "type": "db-performance"}

    def test_error_log(self, recorder):
        try:
            raise ValueError("Network timeout while loading")
        except ValueError as e:
            error_log = recorder.track_error(e, context={"page": "/chat"}, user_id="u1")

        assert error_log.severity == "medium"
        assert error_log.stack and "ValueError" in error_log.stack
        assert error_log.metadata == {"page": "/chat"}
        assert error_log.id.startswith("error-")

    def test_conversion_requires_user(self, recorder):
        assert recorder.track_conversion("signup", "registration", 1) is None
        assert recorder.conversions == []

        conversion = recorder.track_conversion("purchase", "subscription", 5, value=999, user_id="u1")
        assert conversion.currency == "INR"
        assert conversion.value == 999


class TestSeverity:
    @pytest.mark.parametrize(
        "message,severity",
        [
            ("Failed to fetch", "medium"),
            ("Loading chunk 4 failed", "low"),
            ("Security violation", "critical"),
            ("Auth token invalid", "critical"),
            ("Network auth failure", "medium"),
            ("Something else", "medium"),
        ],
    )
    def test_keyword_order(self, message, severity):
        assert determine_severity(message) == severity


class TestSnapshot:
    def test_empty_snapshot_is_zero(self, recorder):
        assert recorder.get_performance_snapshot() == {
            "webVitals": {},
            "errorRate": 0,
            "avgResponseTime": 0,
            "activeUsers": 0,
            "conversionRate": 0,
        }

    def test_errors_without_events(self, recorder):
        recorder.track_error(RuntimeError("boom"))
        assert recorder.get_performance_snapshot()["errorRate"] == 0

    def test_aggregates(self, recorder):
        recorder.record_metric("lcp", 1000, tags={"type": "web-vital"})
        recorder.record_metric("lcp", 2000, tags={"type": "web-vital"})
        recorder.track_api_call("/a", "GET", 100, 200)
        recorder.track_api_call("/b", "GET", 300, 200)
        recorder.track_user_event("click", session_id="s1")
        recorder.track_user_event("click", session_id="s1")
        recorder.track_user_event("click", session_id="s2")
        recorder.track_user_event("click", session_id="s3")
        recorder.track_error(RuntimeError("boom"))
        recorder.track_conversion("signup", "registration", 1, user_id="u1")

        snapshot = recorder.get_performance_snapshot()

        assert snapshot["webVitals"] == {"lcp": 1500}
        assert snapshot["avgResponseTime"] == 200
        assert snapshot["errorRate"] == 25
        assert snapshot["activeUsers"] == 3
        assert snapshot["conversionRate"] == pytest.approx(100 / 3)

    def test_window_excludes_old_records(self, recorder):
        old = utc_now() - timedelta(hours=2)
        recorder.record_metric("lcp", 5000, timestamp=old)
        recorder.track_user_event("click", timestamp=old)

        snapshot = recorder.get_performance_snapshot()
        assert snapshot["webVitals"] == {}
        assert snapshot["activeUsers"] == 0


class TestExport:
    def test_inclusive_range(self, recorder):
        start = datetime(2026, 10, 1, tzinfo=timezone.utc)
        end = datetime(2026, 10, 2, tzinfo=timezone.utc)
        recorder.record_metric("a", 1, timestamp=start)
        recorder.record_metric("b", 2, timestamp=end)
        recorder.record_metric("c", 3, timestamp=end + timedelta(seconds=1))
        recorder.track_user_event("click", timestamp=start + timedelta(hours=1))

        exported = recorder.export_analytics(start, end)

        assert [m.name for m in exported["metrics"]] == ["a", "b"]
        assert len(exported["events"]) == 1
        assert exported["errors"] == []
        assert exported["conversions"] == []


class TestIngest:
    def test_ingest_each_kind(self, recorder):
        recorder.ingest("metric", {"name": "lcp", "value": 1800, "tags": {"type": "web-vital"}})
        recorder.ingest("error", {"message": "Loading chunk failed", "url": "/home"})
        recorder.ingest("event", {"event_type": "page_view", "session_id": "s1"})
        recorder.ingest(
            "conversion",
            {"event_name": "signup", "funnel": "registration", "step": 1, "user_id": "u1"},
            timestamp="2026-10-18T10:00:00Z",
        )

        assert recorder.metrics[0].value == 1800
        assert recorder.errors[0].severity == "low"
        assert recorder.events[0].session_id == "s1"
        assert recorder.conversions[0].timestamp == datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)

    def test_ingest_rejects_bad_input(self, recorder):
        with pytest.raises(ValueError):
            recorder.ingest("unknown", {"x": 1})
        with pytest.raises(KeyError):
            recorder.ingest("metric", {"value": 1})


class TestForwarding:
    @pytest.mark.asyncio
    async def test_posts_record_in_background(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(200)

        recorder = AnalyticsRecorder(
            endpoint=ENDPOINT, development=False, transport=httpx.MockTransport(handler)
        )
        await recorder.init()
        recorder.record_metric("lcp", 1234)
        await recorder.shutdown()

        assert len(received) == 1
        body = received[0].read()
        assert b'"type":"metric"' in body.replace(b" ", b"")
        assert b'"lcp"' in body

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        recorder = AnalyticsRecorder(
            endpoint=ENDPOINT, development=False, transport=httpx.MockTransport(handler)
        )
        await recorder.init()

        with caplog.at_level(logging.WARNING, logger="app.analytics.recorder"):
            recorder.track_user_event("click")
            await recorder.flush()

        assert len(recorder.events) == 1
        assert "Failed to send analytics data" in caplog.text
        await recorder.shutdown()

    def test_queued_outside_event_loop(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(204)

        recorder = AnalyticsRecorder(
            endpoint=ENDPOINT, development=False, transport=httpx.MockTransport(handler)
        )
        recorder.track_conversion("signup", "registration", 1, user_id="u1")
        assert received == []

        asyncio.run(recorder.flush())
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_development_only_logs(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("should not be called")

        recorder = AnalyticsRecorder(
            endpoint=ENDPOINT, development=True, transport=httpx.MockTransport(handler)
        )
        recorder.record_metric("lcp", 1)
        await recorder.flush()
        assert len(recorder.metrics) == 1
