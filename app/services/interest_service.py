"""
Interest Service - interest lifecycle, response handling and mutual-match detection.
"""

import logging
import math
import uuid
from datetime import timedelta
from typing import Optional, List, Dict, Any

from sqlalchemy import select, update, func, or_, and_, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.config import settings
from app.fsm.machine import can_transition, status_for_action
from app.fsm.states import InterestAction, InterestPriority, InterestStatus, NotificationType
from app.models.interest import Interest
from app.models.match import Match, ordered_pair
from app.models.user import User
from app.services.exceptions import (
    InterestConflictError,
    InterestExpiredError,
    InterestForbiddenError,
    InterestLimitError,
    InterestNotFoundError,
    InterestValidationError,
)
from app.services.notification_service import NotificationService
from app.timeutils import utc_now, local_midnight_utc

logger = logging.getLogger(__name__)


def _pair_filter(user_a: uuid.UUID, user_b: uuid.UUID):
    """Interests between two users, either direction."""
    return or_(
        and_(Interest.from_user_id == user_a, Interest.to_user_id == user_b),
        and_(Interest.from_user_id == user_b, Interest.to_user_id == user_a),
    )


def _paginate(items: List[Interest], page: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        "interests": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


class InterestService:
    """Service for sending, answering and querying interests."""

    def __init__(
        self,
        db: AsyncSession,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    async def send_interest(
        self,
        from_user_id: uuid.UUID,
        to_user_id: uuid.UUID,
        message: Optional[str] = None,
        priority: str = InterestPriority.NORMAL.value,
    ) -> Interest:
        """Create a new interest and notify the recipient."""
        if from_user_id == to_user_id:
            raise InterestValidationError("Cannot send interest to yourself")

        try:
            priority = InterestPriority(priority).value
        except ValueError:
            raise InterestValidationError(f"Invalid priority: {priority}")

        from_user = await self._get_user(from_user_id)
        to_user = await self._get_user(to_user_id)
        if not from_user or not to_user:
            raise InterestNotFoundError("User not found")

        existing = await self.db.execute(
            select(Interest.id).where(_pair_filter(from_user_id, to_user_id)).limit(1)
        )
        if existing.first():
            raise InterestConflictError("Interest already exists between these users")

        now = utc_now()
        day_start = local_midnight_utc(now, settings.default_timezone)
        count_result = await self.db.execute(
            select(func.count(Interest.id))
            .where(Interest.from_user_id == from_user_id)
            .where(Interest.sent_at >= day_start)
        )
        if (count_result.scalar() or 0) >= settings.interest_daily_limit:
            raise InterestLimitError("Daily interest limit reached")

        interest = Interest(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            message=message,
            priority=priority,
            status=InterestStatus.SENT.value,
            sent_at=now,
            expires_at=now + timedelta(days=settings.interest_expiry_days),
        )
        self.db.add(interest)
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost a race against a concurrent send for the same pair
            raise InterestConflictError("Interest already exists between these users")

        logger.info(f"Interest {interest.id} sent: {from_user_id} -> {to_user_id}")

        sender_name = from_user.display_name
        await self.notifications.send_notification(
            to_user_id,
            NotificationType.INTEREST_RECEIVED.value,
            "New Interest Received",
            f"{sender_name or 'Someone'} has sent you an interest",
            sender_id=from_user_id,
            data={
                "interestId": str(interest.id),
                "fromUserId": str(from_user_id),
                "fromUserName": sender_name,
            },
        )

        return interest

    async def respond_to_interest(
        self,
        interest_id: uuid.UUID,
        user_id: uuid.UUID,
        action: str,
        response_message: Optional[str] = None,
    ) -> Interest:
        """Accept or decline a received interest."""
        try:
            action = InterestAction(action)
        except ValueError:
            raise InterestValidationError(f"Invalid action: {action}")

        interest = await self._get_interest(interest_id)
        if not interest:
            raise InterestNotFoundError("Interest not found")

        if interest.to_user_id != user_id:
            raise InterestForbiddenError("Unauthorized to respond to this interest")

        # Serialize concurrent responses for the same pair
        await self._lock_pair(interest.from_user_id, interest.to_user_id)

        new_status = status_for_action(action)
        if not can_transition(interest.status, new_status.value):
            raise InterestConflictError("Interest has already been responded to")

        now = utc_now()
        if interest.is_expired(now):
            raise InterestExpiredError("Interest has expired")

        interest.status = new_status.value
        interest.responded_at = now
        interest.is_read = True
        if response_message:
            interest.message = response_message
        await self.db.flush()

        logger.info(f"Interest {interest.id} {interest.status} by {user_id}")

        responder = await self._get_user(interest.to_user_id)
        responder_name = responder.display_name if responder else None

        if action is InterestAction.ACCEPT:
            notification_type = NotificationType.INTEREST_ACCEPTED
            title = "Interest Accepted!"
            body = f"{responder_name or 'Someone'} has accepted your interest"
        else:
            notification_type = NotificationType.INTEREST_DECLINED
            title = "Interest Response"
            body = f"{responder_name or 'Someone'} has declined your interest"

        await self.notifications.send_notification(
            interest.from_user_id,
            notification_type.value,
            title,
            body,
            sender_id=interest.to_user_id,
            data={
                "interestId": str(interest.id),
                "action": action.value,
                "fromUserId": str(interest.to_user_id),
                "fromUserName": responder_name,
            },
        )

        if action is InterestAction.ACCEPT:
            await self._check_for_mutual_match(interest.from_user_id, interest.to_user_id)

        return interest

    async def withdraw_interest(self, interest_id: uuid.UUID, user_id: uuid.UUID) -> Interest:
        """Withdraw a pending interest. The recipient is not notified."""
        interest = await self._get_interest(interest_id)
        if not interest:
            raise InterestNotFoundError("Interest not found")

        if interest.from_user_id != user_id:
            raise InterestForbiddenError("Unauthorized to withdraw this interest")

        await self._lock_pair(interest.from_user_id, interest.to_user_id)

        if not can_transition(interest.status, InterestStatus.WITHDRAWN.value):
            raise InterestConflictError("Cannot withdraw interest that has been responded to")

        interest.status = InterestStatus.WITHDRAWN.value
        await self.db.flush()

        logger.info(f"Interest {interest.id} withdrawn by {user_id}")
        return interest

    async def mark_interest_as_read(self, interest_id: uuid.UUID, user_id: uuid.UUID) -> Interest:
        interest = await self._get_interest(interest_id)
        if not interest:
            raise InterestNotFoundError("Interest not found")

        if interest.to_user_id != user_id:
            raise InterestForbiddenError("Unauthorized")

        interest.is_read = True
        await self.db.flush()
        return interest

    async def get_pending_interests(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        """Unanswered, unexpired interests received by the user; high priority first."""
        now = utc_now()
        conditions = (
            Interest.to_user_id == user_id,
            Interest.status == InterestStatus.SENT.value,
            Interest.expires_at >= now,
        )
        priority_rank = case(
            (Interest.priority == InterestPriority.HIGH.value, InterestPriority.HIGH.rank),
            (Interest.priority == InterestPriority.NORMAL.value, InterestPriority.NORMAL.rank),
            else_=InterestPriority.LOW.rank,
        )

        result = await self.db.execute(
            select(Interest)
            .where(*conditions)
            .order_by(priority_rank.desc(), Interest.sent_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        total_result = await self.db.execute(select(func.count(Interest.id)).where(*conditions))

        return _paginate(list(result.scalars().all()), page, limit, total_result.scalar() or 0)

    async def get_sent_interests(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        result = await self.db.execute(
            select(Interest)
            .where(Interest.from_user_id == user_id)
            .order_by(Interest.sent_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        total_result = await self.db.execute(
            select(func.count(Interest.id)).where(Interest.from_user_id == user_id)
        )

        return _paginate(list(result.scalars().all()), page, limit, total_result.scalar() or 0)

    async def get_received_interests(self, user_id: uuid.UUID) -> List[Interest]:
        result = await self.db.execute(
            select(Interest)
            .where(Interest.to_user_id == user_id)
            .order_by(Interest.sent_at.desc())
        )
        return list(result.scalars().all())

    async def get_mutual_interests(self, user_id: uuid.UUID) -> List[Interest]:
        """
        Accepted interests involving the user whose reverse interest is also accepted.
        Both rows of a matched pair are returned.
        """
        reciprocal = aliased(Interest)
        reciprocal_accepted = (
            select(reciprocal.id)
            .where(reciprocal.from_user_id == Interest.to_user_id)
            .where(reciprocal.to_user_id == Interest.from_user_id)
            .where(reciprocal.status == InterestStatus.ACCEPTED.value)
            .exists()
        )

        result = await self.db.execute(
            select(Interest)
            .where(Interest.status == InterestStatus.ACCEPTED.value)
            .where(or_(Interest.from_user_id == user_id, Interest.to_user_id == user_id))
            .where(reciprocal_accepted)
            .order_by(Interest.responded_at.desc())
        )
        return list(result.scalars().all())

    async def get_interest_stats(self, user_id: uuid.UUID) -> Dict[str, Any]:
        async def count(*conditions) -> int:
            result = await self.db.execute(select(func.count(Interest.id)).where(*conditions))
            return result.scalar() or 0

        sent = await count(Interest.from_user_id == user_id)
        received = await count(Interest.to_user_id == user_id)
        accepted = await count(
            Interest.from_user_id == user_id,
            Interest.status == InterestStatus.ACCEPTED.value,
        )
        declined = await count(
            Interest.from_user_id == user_id,
            Interest.status == InterestStatus.DECLINED.value,
        )
        mutual = await self.get_mutual_interests(user_id)

        return {
            "sent": sent,
            "received": received,
            "accepted": accepted,
            "declined": declined,
            "mutualMatches": len(mutual),
            "acceptanceRate": f"{accepted / sent * 100:.1f}" if sent > 0 else "0.0",
        }

    async def cleanup_expired_interests(self) -> int:
        """Auto-decline pending interests past their expiry. Safe to re-run."""
        result = await self.db.execute(
            update(Interest)
            .where(Interest.status == InterestStatus.SENT.value)
            .where(Interest.expires_at < utc_now())
            .values(status=InterestStatus.DECLINED.value)
            .execution_options(synchronize_session=False)
        )
        modified = result.rowcount or 0
        logger.info(f"Auto-declined {modified} expired interests")
        return modified

    async def _check_for_mutual_match(self, user_a: uuid.UUID, user_b: uuid.UUID) -> bool:
        """
        Record a match and notify both users once both directions are accepted.

        Two separate accepted interests must exist between the pair. The Match
        row's unique pair constraint keeps the notification to at most once.
        """
        result = await self.db.execute(
            select(func.count(Interest.id))
            .where(_pair_filter(user_a, user_b))
            .where(Interest.status == InterestStatus.ACCEPTED.value)
        )
        if (result.scalar() or 0) != 2:
            return False

        low, high = ordered_pair(user_a, user_b)
        existing = await self.db.execute(
            select(Match.id).where(Match.user_low_id == low).where(Match.user_high_id == high)
        )
        if existing.first():
            return False

        try:
            async with self.db.begin_nested():
                self.db.add(Match(user_low_id=low, user_high_id=high))
        except IntegrityError:
            logger.info(f"Match {low}<->{high} already recorded")
            return False

        logger.info(f"Mutual match: {user_a} <-> {user_b}")

        first = await self._get_user(user_a)
        second = await self._get_user(user_b)
        for recipient, other_id, other in ((user_a, user_b, second), (user_b, user_a, first)):
            other_name = other.display_name if other else None
            await self.notifications.send_notification(
                recipient,
                NotificationType.MATCH.value,
                "It's a Match!",
                f"You and {other_name or 'someone'} have both shown interest in each other",
                data={
                    "matchedUserId": str(other_id),
                    "matchedUserName": other_name,
                },
            )

        return True

    async def _lock_pair(self, user_a: uuid.UUID, user_b: uuid.UUID) -> List[Interest]:
        """Lock (and refresh) both interest rows of a pair, in id order."""
        result = await self.db.execute(
            select(Interest)
            .where(_pair_filter(user_a, user_b))
            .order_by(Interest.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _get_interest(self, interest_id: uuid.UUID) -> Optional[Interest]:
        result = await self.db.execute(select(Interest).where(Interest.id == interest_id))
        return result.scalar_one_or_none()

    async def _get_user(self, user_id: uuid.UUID) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()
