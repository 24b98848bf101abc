"""
Celery application configuration.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings

# Create Celery app
celery_app = Celery(
    "vivaha_connect",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.workers.interest_sweeps",
        "app.workers.notification_sweeps",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.default_timezone,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Deferred (quiet hours / scheduled) notifications
    "process-scheduled-notifications": {
        "task": "app.workers.notification_sweeps.process_scheduled_notifications",
        "schedule": crontab(minute="*/5"),
    },
    # Expire stale interests daily at 02:00 IST
    "cleanup-expired-interests": {
        "task": "app.workers.interest_sweeps.cleanup_expired_interests",
        "schedule": crontab(hour=2, minute=0),
    },
    # Purge expired notifications daily at 02:30 IST
    "cleanup-expired-notifications": {
        "task": "app.workers.notification_sweeps.cleanup_expired_notifications",
        "schedule": crontab(hour=2, minute=30),
    },
}
