"""
UserRepository for database operations on User model
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete, select, update
from database_models import User


class UserRepository:
    """
    Repository class for User database operations.
    Encapsulates all database logic for the User model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """
        Retrieve a user by ID.

        Args:
            user_id: User's ID

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_users(self) -> List[User]:
        """All users, newest first"""
        result = await self.db.execute(
            select(User).order_by(User.created_at.desc(), User.id.desc())
        )
        return list(result.scalars().all())

    async def update_user(self, user: User, updates: dict) -> User:
        """
        Update user fields.

        Args:
            user: User object to update
            updates: Dictionary of fields to update (e.g., {"blocked_at": None})

        Returns:
            Updated User object
        """
        for key, value in updates.items():
            if hasattr(user, key):
                setattr(user, key, value)

        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def decrement_free_questions(self, user_id: int) -> bool:
        """
        Consume one free question in a single conditional UPDATE.

        The WHERE clause re-checks the counter at write time, so concurrent
        callers can never take it below zero.

        Returns:
            True if a question was consumed, False if the counter was already 0
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.free_questions_remaining > 0)
            .values(free_questions_remaining=User.free_questions_remaining - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def set_block(self, user_id: int, blocked_at: Optional[datetime]) -> bool:
        """Set or clear blocked_at. Returns False if the user does not exist."""
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(blocked_at=blocked_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete_user(self, user_id: int) -> bool:
        """Delete a user; chats, messages and subscriptions cascade."""
        result = await self.db.execute(
            delete(User)
            .where(User.id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
