"""
SubscriptionRepository - read access to payment-provider subscription records
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import Subscription


class SubscriptionRepository:
    """
    Subscriptions are written by billing event ingestion; this repository
    only reads them.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_latest_for_user(self, user_id: int) -> Optional[Subscription]:
        """
        The most recently updated subscription for a user. Only this record
        is authoritative for entitlements.
        """
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.updated_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
