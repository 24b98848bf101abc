"""
Interest Sweep Worker.

Runs daily to decline interests that expired without an answer.
"""

import asyncio
import logging

from app.workers.celery_app import celery_app
from app.database import get_db_context
from app.services.interest_service import InterestService

logger = logging.getLogger(__name__)


async def sweep_expired_interests() -> int:
    async with get_db_context() as db:
        return await InterestService(db).cleanup_expired_interests()


@celery_app.task(bind=True, max_retries=3)
def cleanup_expired_interests(self):
    """Mark unanswered interests past expiry as declined."""
    try:
        count = asyncio.run(sweep_expired_interests())
        logger.info(f"Expired {count} interests")
        return {"success": True, "count": count}
    except Exception as e:
        logger.error(f"Interest sweep failed: {e}")
        self.retry(exc=e, countdown=60)
