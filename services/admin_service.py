"""
Admin Service - user management and entitlement overrides
"""
import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from crud.user import UserRepository
from database_models import User
from services.errors import NoChangesError, SelfActionError, UserNotFoundError
from utils.shared_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


class AdminService:
    """
    Administrative operations on user accounts.
    Callers are expected to have been checked for the admin role already.
    """

    def __init__(self, db: AsyncSession, user_repo: UserRepository = None):
        self.db = db
        self.user_repo = user_repo or UserRepository(db)

    async def list_users(self) -> List[User]:
        return await self.user_repo.list_users()

    async def set_entitlements(self, user_id: int, updates: dict) -> User:
        """
        Absolute set of a user's entitlement fields.

        Args:
            user_id: Target user
            updates: Subset of free_questions_remaining / free_period_ends_at.
                An explicit None for free_period_ends_at clears the free period.

        Raises:
            NoChangesError: If updates has no entitlement fields
            UserNotFoundError: If the user does not exist
        """
        changes = {}
        if updates.get("free_questions_remaining") is not None:
            if updates["free_questions_remaining"] < 0:
                raise ValueError("free_questions_remaining must be non-negative")
            changes["free_questions_remaining"] = updates["free_questions_remaining"]
        if "free_period_ends_at" in updates:
            # Stored as UTC; naive values are taken to be UTC already
            changes["free_period_ends_at"] = as_utc(updates["free_period_ends_at"])
        if not changes:
            raise NoChangesError()

        user = await self.user_repo.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError()

        user = await self.user_repo.update_user(user, changes)
        logger.info(f"Entitlements for user {user_id} set to {sorted(changes)}")
        return user

    async def block_user(self, actor_id: int, user_id: int) -> None:
        """
        Raises:
            SelfActionError: If the admin targets their own account
            UserNotFoundError: If the user does not exist
        """
        if actor_id == user_id:
            raise SelfActionError("You cannot block your own account")
        if not await self.user_repo.set_block(user_id, utcnow()):
            raise UserNotFoundError()
        logger.info(f"User {user_id} blocked by admin {actor_id}")

    async def unblock_user(self, actor_id: int, user_id: int) -> None:
        if not await self.user_repo.set_block(user_id, None):
            raise UserNotFoundError()
        logger.info(f"User {user_id} unblocked by admin {actor_id}")

    async def delete_user(self, actor_id: int, user_id: int) -> None:
        """
        Delete an account together with its chats, messages and subscriptions.

        Raises:
            SelfActionError: If the admin targets their own account
            UserNotFoundError: If the user does not exist
        """
        if actor_id == user_id:
            raise SelfActionError("You cannot delete your own account")
        if not await self.user_repo.delete_user(user_id):
            raise UserNotFoundError()
        logger.info(f"User {user_id} deleted by admin {actor_id}")
