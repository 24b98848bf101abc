"""
Analytics Recorder - bounded in-memory buffers of metrics, errors, events and conversions.

Records are appended locally and forwarded best-effort to an external sink.
Forwarding never raises into the caller.
"""

import asyncio
import json
import logging
import traceback
import uuid
from collections import deque
from dataclasses import dataclass, asdict, field
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Deque, Mapping

import httpx

from app.config import settings
from app.timeutils import utc_now, as_utc

logger = logging.getLogger(__name__)

WEB_VITALS = ("lcp", "fid", "cls", "ttfb")
WEB_VITAL_TAGS = {"type": "web-vital"}
SERVER_SESSION = "server-session"


@dataclass(frozen=True)
class PerformanceMetric:
    name: str
    value: float
    timestamp: datetime
    tags: Optional[Dict[str, str]] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ErrorLog:
    id: str
    message: str
    url: str
    user_agent: str
    timestamp: datetime
    severity: str
    stack: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class UserEvent:
    event_type: str
    session_id: str
    timestamp: datetime
    properties: Dict[str, Any] = field(default_factory=dict)
    page_url: str = ""
    user_id: Optional[str] = None


@dataclass(frozen=True)
class ConversionEvent:
    event_name: str
    user_id: str
    timestamp: datetime
    funnel: str
    step: int
    value: Optional[float] = None
    currency: str = "INR"
    metadata: Optional[Dict[str, Any]] = None


def determine_severity(message: str) -> str:
    """Ordered keyword heuristic; the first match wins."""
    text = message.lower()
    if "network" in text or "fetch" in text:
        return "medium"
    if "chunk" in text or "loading" in text:
        return "low"
    if "security" in text or "auth" in text:
        return "critical"
    return "medium"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return str(value)


def record_to_dict(record: Any) -> Dict[str, Any]:
    """JSON-safe dict for a record dataclass."""
    return json.loads(json.dumps(asdict(record), default=_json_default))


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0


class AnalyticsRecorder:
    """
    Process-local analytics store.

    Each buffer keeps the newest `max_size` records. Constructed explicitly
    and owned by the application; call `init()` on startup and `shutdown()`
    on exit.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        max_size: Optional[int] = None,
        window_minutes: Optional[int] = None,
        development: Optional[bool] = None,
        currency: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.analytics_endpoint
        self.max_size = max_size or settings.analytics_buffer_size
        self.window = timedelta(minutes=window_minutes or settings.analytics_window_minutes)
        self.development = settings.is_development if development is None else development
        self.currency = currency or settings.analytics_currency
        self.transport = transport

        self._metrics: Deque[PerformanceMetric] = deque(maxlen=self.max_size)
        self._errors: Deque[ErrorLog] = deque(maxlen=self.max_size)
        self._events: Deque[UserEvent] = deque(maxlen=self.max_size)
        self._conversions: Deque[ConversionEvent] = deque(maxlen=self.max_size)

        # Running CLS per session
        self._layout_shift: Dict[str, float] = {}

        self._client: Optional[httpx.AsyncClient] = None
        self._tasks: set = set()
        self._backlog: Deque[Dict[str, Any]] = deque(maxlen=self.max_size)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        if self._client is None and self.endpoint and not self.development:
            self._client = httpx.AsyncClient(timeout=5.0, transport=self.transport)
        logger.info("Analytics recorder initialized")

    async def flush(self) -> None:
        """Wait for in-flight forwards and send anything queued outside a loop."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        while self._backlog:
            await self._post(self._backlog.popleft())

    async def shutdown(self) -> None:
        await self.flush()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Analytics recorder shut down")

    # ------------------------------------------------------------------
    # Buffers
    # ------------------------------------------------------------------

    @property
    def metrics(self) -> List[PerformanceMetric]:
        return list(self._metrics)

    @property
    def errors(self) -> List[ErrorLog]:
        return list(self._errors)

    @property
    def events(self) -> List[UserEvent]:
        return list(self._events)

    @property
    def conversions(self) -> List[ConversionEvent]:
        return list(self._conversions)

    def clear(self) -> None:
        self._metrics.clear()
        self._errors.clear()
        self._events.clear()
        self._conversions.clear()
        self._layout_shift.clear()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_metric(
        self,
        name: str,
        value: float,
        timestamp: Optional[datetime] = None,
        tags: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        forward: bool = True,
    ) -> PerformanceMetric:
        metric = PerformanceMetric(
            name=name,
            value=float(value),
            timestamp=timestamp or utc_now(),
            tags=tags,
            metadata=metadata,
        )
        self._metrics.append(metric)
        if forward:
            self.send_to_analytics("metric", metric)
        return metric

    def record_largest_contentful_paint(self, start_time: float) -> PerformanceMetric:
        return self.record_metric("lcp", start_time, tags=dict(WEB_VITAL_TAGS))

    def record_first_input(self, processing_start: float, start_time: float) -> PerformanceMetric:
        return self.record_metric("fid", processing_start - start_time, tags=dict(WEB_VITAL_TAGS))

    def record_layout_shift(
        self,
        session_id: str,
        value: float,
        had_recent_input: bool = False,
    ) -> PerformanceMetric:
        """Accumulate layout shifts not caused by user input and record the running CLS."""
        cls_value = self._layout_shift.get(session_id, 0.0)
        if not had_recent_input:
            cls_value += value or 0.0
        self._layout_shift[session_id] = cls_value
        return self.record_metric("cls", cls_value, tags=dict(WEB_VITAL_TAGS))

    def record_navigation_timing(self, timing: Mapping[str, float]) -> Optional[PerformanceMetric]:
        """Time to first byte from a navigation timing entry."""
        if "responseStart" not in timing or "requestStart" not in timing:
            return None
        return self.record_metric(
            "ttfb",
            timing["responseStart"] - timing["requestStart"],
            tags=dict(WEB_VITAL_TAGS),
        )

    def track_page_load(self, page_name: str, timing: Mapping[str, float]) -> None:
        if "fetchStart" not in timing:
            return
        tags = {"page": page_name, "type": "page-performance"}
        if "loadEventEnd" in timing:
            self.record_metric("page_load_time", timing["loadEventEnd"] - timing["fetchStart"], tags=dict(tags))
        if "domContentLoadedEventEnd" in timing:
            self.record_metric(
                "dom_content_loaded",
                timing["domContentLoadedEventEnd"] - timing["fetchStart"],
                tags=dict(tags),
            )

    def track_api_call(self, endpoint: str, method: str, duration: float, status: int) -> None:
        self.record_metric(
            "api_response_time",
            duration,
            tags={
                "endpoint": endpoint,
                "method": method,
                "status": str(status),
                "type": "api-performance",
            },
        )
        if status >= 400:
            self.track_user_event(
                "api_error",
                {"endpoint": endpoint, "method": method, "status": status, "duration": duration},
            )

    def track_database_query(self, query: str, duration: float, collection: Optional[str] = None) -> None:
        self.record_metric(
            "db_query_time",
            duration,
            tags={"collection": collection or "unknown", "type": "db-performance"},
            # Truncated so query parameters don't leak
            metadata={"query": query[:100]},
        )

    def track_error(
        self,
        error: BaseException,
        context: Optional[Dict[str, Any]] = None,
        url: str = "server",
        user_agent: str = "server",
        user_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        forward: bool = True,
    ) -> ErrorLog:
        message = str(error)
        stack = None
        if error.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))

        now = timestamp or utc_now()
        error_log = ErrorLog(
            id=f"error-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}",
            message=message,
            stack=stack,
            url=url,
            user_agent=user_agent,
            user_id=user_id,
            timestamp=now,
            severity=determine_severity(message),
            metadata=context,
        )
        self._errors.append(error_log)
        if forward:
            self.send_to_analytics("error", error_log)
        return error_log

    def track_user_event(
        self,
        event_type: str,
        properties: Optional[Dict[str, Any]] = None,
        session_id: str = SERVER_SESSION,
        user_id: Optional[str] = None,
        page_url: str = "",
        timestamp: Optional[datetime] = None,
        forward: bool = True,
    ) -> UserEvent:
        event = UserEvent(
            event_type=event_type,
            session_id=session_id,
            user_id=user_id,
            timestamp=timestamp or utc_now(),
            properties=dict(properties or {}),
            page_url=page_url,
        )
        self._events.append(event)
        if forward:
            self.send_to_analytics("event", event)
        return event

    def track_conversion(
        self,
        event_name: str,
        funnel: str,
        step: int,
        value: Optional[float] = None,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
        forward: bool = True,
    ) -> Optional[ConversionEvent]:
        """Conversions are only kept for identified users."""
        if not user_id:
            return None

        conversion = ConversionEvent(
            event_name=event_name,
            user_id=user_id,
            value=value,
            currency=self.currency,
            timestamp=timestamp or utc_now(),
            funnel=funnel,
            step=step,
            metadata=metadata,
        )
        self._conversions.append(conversion)
        if forward:
            self.send_to_analytics("conversion", conversion)
        return conversion

    def ingest(self, type: str, data: Mapping[str, Any], timestamp: Optional[str] = None) -> Any:
        """
        Store a record received from a client, in the shape `send_to_analytics` emits.

        Ingested records are not forwarded again. Raises KeyError/ValueError
        on malformed input.
        """
        ts = _parse_timestamp(data.get("timestamp") or timestamp)

        if type == "metric":
            return self.record_metric(
                data["name"],
                data["value"],
                timestamp=ts,
                tags=data.get("tags"),
                metadata=data.get("metadata"),
                forward=False,
            )

        if type == "error":
            now = ts or utc_now()
            message = str(data["message"])
            error_log = ErrorLog(
                id=data.get("id") or f"error-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}",
                message=message,
                stack=data.get("stack"),
                url=data.get("url", "unknown"),
                user_agent=data.get("user_agent", "unknown"),
                user_id=data.get("user_id"),
                timestamp=now,
                severity=data.get("severity") or determine_severity(message),
                metadata=data.get("metadata"),
            )
            self._errors.append(error_log)
            return error_log

        if type == "event":
            return self.track_user_event(
                data["event_type"],
                data.get("properties"),
                session_id=data.get("session_id") or SERVER_SESSION,
                user_id=data.get("user_id"),
                page_url=data.get("page_url", ""),
                timestamp=ts,
                forward=False,
            )

        if type == "conversion":
            return self.track_conversion(
                data["event_name"],
                data["funnel"],
                int(data["step"]),
                value=data.get("value"),
                user_id=data.get("user_id"),
                metadata=data.get("metadata"),
                timestamp=ts,
                forward=False,
            )

        raise ValueError(f"Unknown analytics type: {type}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_performance_snapshot(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Aggregates over the trailing window. Empty denominators yield 0."""
        cutoff = as_utc(now or utc_now()) - self.window

        recent_metrics = [m for m in self._metrics if as_utc(m.timestamp) > cutoff]
        recent_errors = [e for e in self._errors if as_utc(e.timestamp) > cutoff]
        recent_events = [e for e in self._events if as_utc(e.timestamp) > cutoff]
        recent_conversions = [c for c in self._conversions if as_utc(c.timestamp) > cutoff]

        web_vitals: Dict[str, float] = {}
        for vital in WEB_VITALS:
            values = [m.value for m in recent_metrics if m.name == vital]
            if values:
                web_vitals[vital] = _mean(values)

        total_events = len(recent_events)
        error_rate = len(recent_errors) / total_events * 100 if total_events > 0 else 0

        avg_response_time = _mean([m.value for m in recent_metrics if m.name == "api_response_time"])

        active_users = len({e.session_id for e in recent_events})
        conversion_rate = len(recent_conversions) / active_users * 100 if active_users > 0 else 0

        return {
            "webVitals": web_vitals,
            "errorRate": error_rate,
            "avgResponseTime": avg_response_time,
            "activeUsers": active_users,
            "conversionRate": conversion_rate,
        }

    def export_analytics(self, start: datetime, end: datetime) -> Dict[str, List[Any]]:
        """All records with start <= timestamp <= end."""
        start, end = as_utc(start), as_utc(end)

        def in_range(records):
            return [r for r in records if start <= as_utc(r.timestamp) <= end]

        return {
            "metrics": in_range(self._metrics),
            "errors": in_range(self._errors),
            "events": in_range(self._events),
            "conversions": in_range(self._conversions),
        }

    # ------------------------------------------------------------------
    # Forwarding
    # ------------------------------------------------------------------

    def send_to_analytics(self, type: str, data: Any) -> None:
        """Forward a record to the analytics endpoint without blocking the caller."""
        payload = {
            "type": type,
            "data": record_to_dict(data) if hasattr(data, "__dataclass_fields__") else data,
            "timestamp": utc_now().isoformat(),
        }

        if self.development or not self.endpoint:
            logger.debug(f"[Analytics] {type}: {payload['data']}")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop here; sent on the next flush()
            self._backlog.append(payload)
            return

        task = loop.create_task(self._post(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _post(self, payload: Dict[str, Any]) -> None:
        try:
            if self._client is not None:
                response = await self._client.post(self.endpoint, json=payload)
            else:
                async with httpx.AsyncClient(timeout=5.0, transport=self.transport) as client:
                    response = await client.post(self.endpoint, json=payload)
            response.raise_for_status()
        except Exception as e:
            logger.warning(f"Failed to send analytics data: {e}")
