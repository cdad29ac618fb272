"""
Chat Service - entitlement-gated chat creation and message posting
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crud.chat import ChatRepository
from crud.user import UserRepository
from database_models import Chat, Message
from services.access_policy import (
    DenialReason,
    MessageCounts,
    authorize_message,
    authorize_new_chat,
)
from services.entitlement_service import EntitlementService
from services.errors import (
    ChatNotFoundError,
    FreeQuestionExhaustedError,
    NoUserMessageYetError,
    PaymentRequiredError,
)
from utils.shared_utils import clamp

logger = logging.getLogger(__name__)

_DENIAL_ERRORS = {
    DenialReason.PAYMENT_REQUIRED: PaymentRequiredError,
    DenialReason.FREE_QUESTION_EXHAUSTED: FreeQuestionExhaustedError,
    DenialReason.NO_USER_MESSAGE_YET: NoUserMessageYetError,
}

# Pagination bounds
CHAT_PAGE_DEFAULT = 20
CHAT_PAGE_MAX = 50
MESSAGE_PAGE_DEFAULT = 100
MESSAGE_PAGE_MAX = 200


class ChatService:
    """
    Service class for the chat ledger.

    Every write goes snapshot -> access policy -> ledger; denials surface
    as EntitlementError subclasses.
    """

    def __init__(
        self,
        db: AsyncSession,
        chat_repo: Optional[ChatRepository] = None,
        user_repo: Optional[UserRepository] = None,
        entitlement_service: Optional[EntitlementService] = None,
    ):
        self.db = db
        self.chat_repo = chat_repo or ChatRepository(db)
        self.user_repo = user_repo or UserRepository(db)
        self.entitlement_service = entitlement_service or EntitlementService(db)

    async def create_chat(self, user_id: int) -> Chat:
        """
        Open a new chat for a user.

        A chat opened without subscription or free period is tagged free and
        consumes one free question. The counter read and its decrement are
        separate statements: two concurrent requests may both get a free
        chat, but the counter is decremented at most once per remaining
        question and never below zero.

        Raises:
            PaymentRequiredError: If the user has no access path
            UserNotFoundError: If the user does not exist
        """
        snapshot = await self.entitlement_service.get_snapshot(user_id)
        decision = authorize_new_chat(snapshot)
        if not decision.allowed:
            logger.info(f"Chat creation denied for user {user_id}: {decision.reason.value}")
            raise _DENIAL_ERRORS[decision.reason]()

        chat = await self.chat_repo.create_chat(user_id, is_free=decision.is_free_chat)

        if decision.consume_free_question:
            consumed = await self.user_repo.decrement_free_questions(user_id)
            if not consumed:
                logger.warning(
                    f"Free question for user {user_id} was already consumed concurrently; "
                    f"chat {chat.id} kept as free"
                )

        logger.info(f"Chat {chat.id} created for user {user_id} (is_free={chat.is_free})")
        return chat

    async def post_message(
        self,
        user_id: int,
        chat_id: int,
        role: str,
        content: str,
        bypasses_entitlement: bool = False,
    ) -> Message:
        """
        Append a message to one of the user's chats.

        Args:
            user_id: Caller, who must own the chat
            chat_id: Target chat
            role: "user" or "assistant"
            content: Message text
            bypasses_entitlement: Skip entitlement checks (administrators)

        Raises:
            ChatNotFoundError: Chat missing or owned by someone else
            PaymentRequiredError: No access and the chat is not free
            FreeQuestionExhaustedError: Free chat already holds its question/answer
            NoUserMessageYetError: Assistant message before any user message
        """
        chat = await self.chat_repo.get_chat_for_user(chat_id, user_id, lock=True)
        if chat is None:
            raise ChatNotFoundError()

        snapshot = await self.entitlement_service.get_snapshot(user_id)
        counts = MessageCounts.from_mapping(await self.chat_repo.count_messages_by_role(chat.id))
        decision = authorize_message(
            snapshot,
            chat.is_free,
            role,
            counts,
            bypasses_entitlement=bypasses_entitlement,
        )
        if not decision.allowed:
            logger.info(
                f"Message denied in chat {chat.id} for user {user_id} "
                f"(role={role}, state={counts.state.value}): {decision.reason.value}"
            )
            raise _DENIAL_ERRORS[decision.reason]()

        return await self.chat_repo.append_message(chat.id, role, content)

    async def list_chats(self, user_id: int, limit: Optional[int] = None, offset: Optional[int] = None):
        """Chat summaries for the user plus the total number of chats"""
        limit = clamp(limit or CHAT_PAGE_DEFAULT, 1, CHAT_PAGE_MAX)
        offset = max(offset or 0, 0)
        return await self.chat_repo.list_chats_for_user(user_id, limit, offset)

    async def get_chat_with_messages(
        self,
        user_id: int,
        chat_id: int,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> dict:
        """
        A chat, a page of its messages and its free chat state.

        Raises:
            ChatNotFoundError: Chat missing or owned by someone else
        """
        chat = await self.chat_repo.get_chat_for_user(chat_id, user_id)
        if chat is None:
            raise ChatNotFoundError()

        limit = clamp(limit or MESSAGE_PAGE_DEFAULT, 1, MESSAGE_PAGE_MAX)
        offset = max(offset or 0, 0)
        messages, total = await self.chat_repo.list_messages(chat.id, limit, offset)
        counts = MessageCounts.from_mapping(await self.chat_repo.count_messages_by_role(chat.id))
        return {
            "chat": chat,
            "messages": messages,
            "total": total,
            "free_state": counts.state,
        }
