"""
Entitlement Service - point-in-time view of a user's access rights
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crud.subscription import SubscriptionRepository
from database_models import User
from services.errors import UserNotFoundError
from utils.shared_utils import as_utc, isoformat, utcnow

# Statuses that grant paid access
ACCESS_GRANTING_STATUSES = frozenset({"active", "trialing"})

# Reported when a user has never had a subscription
NO_SUBSCRIPTION_STATUS = "canceled"


@dataclass(frozen=True)
class EntitlementSnapshot:
    """Read-only summary of a user's access rights used for one decision."""
    subscription_status: str
    subscription_period_end: Optional[datetime]
    free_questions_remaining: int
    free_period_ends_at: Optional[datetime]
    free_period_active: bool

    @property
    def has_subscription(self) -> bool:
        return self.subscription_status in ACCESS_GRANTING_STATUSES

    def to_dict(self) -> dict:
        return {
            "subscription_status": self.subscription_status,
            "current_period_end": isoformat(self.subscription_period_end),
            "free_questions_remaining": self.free_questions_remaining,
            "free_period_ends_at": isoformat(self.free_period_ends_at),
            "free_period_active": self.free_period_active,
        }


class EntitlementService:
    """
    Builds entitlement snapshots from the user row and the user's most
    recently updated subscription. Pure read, no side effects.
    """

    def __init__(self, db: AsyncSession, subscription_repo: Optional[SubscriptionRepository] = None):
        """
        Args:
            db: AsyncSession instance for database operations
            subscription_repo: SubscriptionRepository, created from db if omitted
        """
        self.db = db
        self.subscription_repo = subscription_repo or SubscriptionRepository(db)

    async def get_snapshot(self, user_id: int, now: Optional[datetime] = None) -> EntitlementSnapshot:
        """
        Compute the entitlement snapshot for a user.

        Args:
            user_id: User to inspect
            now: Reference instant for free period expiry (defaults to current UTC time)

        Returns:
            EntitlementSnapshot

        Raises:
            UserNotFoundError: If the user does not exist
        """
        # Column select so a stale identity-map User never masks the stored counter
        result = await self.db.execute(
            select(User.free_questions_remaining, User.free_period_ends_at).where(User.id == user_id)
        )
        row = result.one_or_none()
        if row is None:
            raise UserNotFoundError()

        subscription = await self.subscription_repo.get_latest_for_user(user_id)

        reference = as_utc(now) if now else utcnow()
        free_period_ends_at = as_utc(row.free_period_ends_at)
        free_period_active = free_period_ends_at is not None and free_period_ends_at > reference

        return EntitlementSnapshot(
            subscription_status=subscription.status if subscription else NO_SUBSCRIPTION_STATUS,
            subscription_period_end=as_utc(subscription.current_period_end) if subscription else None,
            free_questions_remaining=row.free_questions_remaining or 0,
            free_period_ends_at=free_period_ends_at,
            free_period_active=free_period_active,
        )
