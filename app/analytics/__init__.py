"""Analytics package - recorder, funnels and user sessions."""

from app.analytics.recorder import (
    AnalyticsRecorder,
    PerformanceMetric,
    ErrorLog,
    UserEvent,
    ConversionEvent,
)
from app.analytics.funnels import FunnelTracker, FunnelStep, ConversionFunnel
from app.analytics.sessions import UserAnalytics, UserProfile

__all__ = [
    "AnalyticsRecorder",
    "PerformanceMetric",
    "ErrorLog",
    "UserEvent",
    "ConversionEvent",
    "FunnelTracker",
    "FunnelStep",
    "ConversionFunnel",
    "UserAnalytics",
    "UserProfile",
]
