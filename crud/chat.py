"""
ChatRepository - the chat/message ledger
"""

from typing import Dict, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select
from database_models import Chat, Message


class ChatRepository:
    """
    Repository for chats and their messages.

    Ownership ("does this chat belong to this caller") is checked by
    get_chat_for_user before any message operation.
    """

    def __init__(self, db: AsyncSession):
        """
        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def create_chat(self, user_id: int, is_free: bool) -> Chat:
        """
        Create a chat for a user.

        Args:
            user_id: Owning user
            is_free: Access tier the chat was opened under; never changes afterwards

        Returns:
            Created Chat with id and created_at populated
        """
        chat = Chat(user_id=user_id, is_free=is_free)
        self.db.add(chat)
        await self.db.flush()
        await self.db.refresh(chat)
        return chat

    async def get_chat_for_user(self, chat_id: int, user_id: int, lock: bool = False) -> Optional[Chat]:
        """
        Fetch a chat only if it belongs to the user.

        Args:
            chat_id: Chat ID
            user_id: Caller's user ID
            lock: Take a row lock (SELECT ... FOR UPDATE) so concurrent posts
                to the same chat count messages one at a time. Backends
                without row locks (SQLite) ignore it.

        Returns:
            Chat if found and owned by the user, None otherwise
        """
        query = select(Chat).where(Chat.id == chat_id, Chat.user_id == user_id)
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def count_messages(self, chat_id: int, role: str) -> int:
        """Number of messages with the given role in a chat"""
        result = await self.db.execute(
            select(func.count(Message.id)).where(Message.chat_id == chat_id, Message.role == role)
        )
        return int(result.scalar_one())

    async def count_messages_by_role(self, chat_id: int) -> Dict[str, int]:
        """
        Per-role message counts in one query.

        Returns:
            Mapping role -> count; roles with no messages are absent
        """
        result = await self.db.execute(
            select(Message.role, func.count(Message.id))
            .where(Message.chat_id == chat_id)
            .group_by(Message.role)
        )
        return {role: int(count) for role, count in result.all()}

    async def append_message(self, chat_id: int, role: str, content: str) -> Message:
        """Persist a message, timestamped now"""
        message = Message(chat_id=chat_id, role=role, content=content)
        self.db.add(message)
        await self.db.flush()
        await self.db.refresh(message)
        return message

    async def list_chats_for_user(self, user_id: int, limit: int, offset: int) -> Tuple[List[dict], int]:
        """
        Chat summaries for a user, most recently active first.

        Returns:
            (summaries, total) where each summary has id, created_at, is_free,
            last_message, last_message_at and message_count
        """
        total_result = await self.db.execute(
            select(func.count(Chat.id)).where(Chat.user_id == user_id)
        )
        total = int(total_result.scalar_one())

        last_message = (
            select(Message.content)
            .where(Message.chat_id == Chat.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
            .correlate(Chat)
            .scalar_subquery()
        )
        last_message_at = (
            select(Message.created_at)
            .where(Message.chat_id == Chat.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
            .correlate(Chat)
            .scalar_subquery()
        )
        message_count = (
            select(func.count(Message.id))
            .where(Message.chat_id == Chat.id)
            .correlate(Chat)
            .scalar_subquery()
        )

        result = await self.db.execute(
            select(
                Chat.id,
                Chat.created_at,
                Chat.is_free,
                last_message.label("last_message"),
                last_message_at.label("last_message_at"),
                message_count.label("message_count"),
            )
            .where(Chat.user_id == user_id)
            .order_by(func.coalesce(last_message_at, Chat.created_at).desc(), Chat.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return [dict(row._mapping) for row in result.all()], total

    async def list_messages(self, chat_id: int, limit: int, offset: int) -> Tuple[List[Message], int]:
        """Messages of a chat in creation order, with the total count"""
        total_result = await self.db.execute(
            select(func.count(Message.id)).where(Message.chat_id == chat_id)
        )
        total = int(total_result.scalar_one())

        result = await self.db.execute(
            select(Message)
            .where(Message.chat_id == chat_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total
