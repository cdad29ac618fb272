"""
Tests for ChatService: entitlement-gated chat creation and message posting
"""
import logging
from unittest.mock import patch

import pytest
from sqlalchemy import select

from crud.chat import ChatRepository
from crud.user import UserRepository
from database_models import Chat, User
from services.access_policy import FreeChatState, authorize_message
from services.chat_service import ChatService
from services.entitlement_service import EntitlementService, EntitlementSnapshot
from services.errors import (
    ChatNotFoundError,
    FreeQuestionExhaustedError,
    NoUserMessageYetError,
    PaymentRequiredError,
)
from tests.conftest import create_subscription, create_user, days_from_now


async def stored_free_questions(db, user_id: int) -> int:
    result = await db.execute(select(User.free_questions_remaining).where(User.id == user_id))
    return result.scalar_one()


# ---------------------------------------------------------------------------
# CreateChat
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["active", "trialing"])
async def test_subscriber_creates_paid_chat_without_decrement(test_db, status):
    user = await create_user(test_db, free_questions_remaining=1)
    await create_subscription(test_db, user, status=status)

    chat = await ChatService(test_db).create_chat(user.id)

    assert chat.id is not None
    assert chat.created_at is not None
    assert chat.is_free is False
    assert await stored_free_questions(test_db, user.id) == 1


@pytest.mark.asyncio
async def test_free_period_creates_paid_chat_without_decrement(test_db):
    user = await create_user(test_db, free_questions_remaining=1, free_period_ends_at=days_from_now(3))

    chat = await ChatService(test_db).create_chat(user.id)

    assert chat.is_free is False
    assert await stored_free_questions(test_db, user.id) == 1


@pytest.mark.asyncio
async def test_free_question_creates_free_chat_and_decrements(test_db):
    user = await create_user(test_db, free_questions_remaining=1)

    chat = await ChatService(test_db).create_chat(user.id)

    assert chat.is_free is True
    assert await stored_free_questions(test_db, user.id) == 0
    snapshot = await EntitlementService(test_db).get_snapshot(user.id)
    assert snapshot.free_questions_remaining == 0


@pytest.mark.asyncio
async def test_no_free_questions_requires_payment(test_db):
    user = await create_user(test_db, free_questions_remaining=0)

    with pytest.raises(PaymentRequiredError):
        await ChatService(test_db).create_chat(user.id)

    result = await test_db.execute(select(Chat).where(Chat.user_id == user.id))
    assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_expired_free_period_falls_back_to_counter(test_db):
    user = await create_user(test_db, free_questions_remaining=0, free_period_ends_at=days_from_now(-1))

    with pytest.raises(PaymentRequiredError):
        await ChatService(test_db).create_chat(user.id)


@pytest.mark.asyncio
async def test_each_free_chat_consumes_one_question(test_db):
    user = await create_user(test_db, free_questions_remaining=2)
    service = ChatService(test_db)

    first = await service.create_chat(user.id)
    second = await service.create_chat(user.id)

    assert first.is_free is True and second.is_free is True
    assert await stored_free_questions(test_db, user.id) == 0
    with pytest.raises(PaymentRequiredError):
        await service.create_chat(user.id)


@pytest.mark.asyncio
async def test_concurrent_free_chats_never_overdraw_counter(session_factory):
    """
    Two creations that both read the counter before either decrements:
    both get a free chat, the counter ends at zero and never below.
    """
    async with session_factory() as setup:
        user = await create_user(setup, free_questions_remaining=1)

    async with session_factory() as first_db, session_factory() as second_db:
        first = ChatService(first_db)
        second = ChatService(second_db)

        # Both requests observe the same remaining question
        first_snapshot = await first.entitlement_service.get_snapshot(user.id)
        second_snapshot = await second.entitlement_service.get_snapshot(user.id)
        assert first_snapshot.free_questions_remaining == 1
        assert second_snapshot.free_questions_remaining == 1
        await first_db.rollback()
        await second_db.rollback()

        first_chat = await first.create_chat(user.id)
        await first_db.commit()

        # The second request already decided on stale data; its decrement is a no-op
        second_chat = await second.chat_repo.create_chat(user.id, is_free=True)
        consumed = await second.user_repo.decrement_free_questions(user.id)
        await second_db.commit()

    assert first_chat.is_free is True
    assert second_chat.is_free is True
    assert consumed is False

    async with session_factory() as check:
        assert await stored_free_questions(check, user.id) == 0


class StaleEntitlementService:
    """Returns a snapshot read before another request drained the counter"""

    def __init__(self, snapshot: EntitlementSnapshot):
        self.snapshot = snapshot

    async def get_snapshot(self, user_id, now=None):
        return self.snapshot


@pytest.mark.asyncio
async def test_create_chat_after_lost_decrement_keeps_free_chat(test_db, caplog):
    user = await create_user(test_db, free_questions_remaining=1)
    stale_snapshot = await EntitlementService(test_db).get_snapshot(user.id)

    first_chat = await ChatService(test_db).create_chat(user.id)
    assert await stored_free_questions(test_db, user.id) == 0

    late_service = ChatService(test_db, entitlement_service=StaleEntitlementService(stale_snapshot))
    with caplog.at_level(logging.WARNING, logger="services.chat_service"):
        late_chat = await late_service.create_chat(user.id)

    assert first_chat.is_free is True
    assert late_chat.is_free is True
    assert late_chat.id != first_chat.id
    assert await stored_free_questions(test_db, user.id) == 0
    assert any(
        record.levelno == logging.WARNING and "already consumed concurrently" in record.getMessage()
        for record in caplog.records
    )


@pytest.mark.asyncio
async def test_decrement_is_conditional_on_positive_counter(test_db):
    user = await create_user(test_db, free_questions_remaining=0)
    repo = UserRepository(test_db)

    assert await repo.decrement_free_questions(user.id) is False
    assert await stored_free_questions(test_db, user.id) == 0


# ---------------------------------------------------------------------------
# PostMessage
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_free_chat_allows_one_question_and_one_answer(test_db):
    user = await create_user(test_db, free_questions_remaining=1)
    service = ChatService(test_db)
    chat = await service.create_chat(user.id)

    question = await service.post_message(user.id, chat.id, "user", "How do I write a cover letter?")
    assert question.role == "user"
    assert question.chat_id == chat.id

    with pytest.raises(FreeQuestionExhaustedError):
        await service.post_message(user.id, chat.id, "user", "And a follow-up?")

    answer = await service.post_message(user.id, chat.id, "assistant", "Start with a short introduction.")
    assert answer.role == "assistant"

    with pytest.raises(FreeQuestionExhaustedError):
        await service.post_message(user.id, chat.id, "assistant", "One more thing.")

    detail = await service.get_chat_with_messages(user.id, chat.id)
    assert detail["total"] == 2
    assert detail["free_state"] == FreeChatState.ANSWERED


@pytest.mark.asyncio
async def test_free_chat_answer_requires_question_first(test_db):
    user = await create_user(test_db, free_questions_remaining=1)
    service = ChatService(test_db)
    chat = await service.create_chat(user.id)

    with pytest.raises(NoUserMessageYetError):
        await service.post_message(user.id, chat.id, "assistant", "Unprompted answer")

    assert await ChatRepository(test_db).count_messages(chat.id, "assistant") == 0


@pytest.mark.asyncio
async def test_free_chat_limit_ignores_remaining_counter(test_db):
    """More free questions on the account do not widen a single free chat"""
    user = await create_user(test_db, free_questions_remaining=3)
    service = ChatService(test_db)
    chat = await service.create_chat(user.id)
    await service.post_message(user.id, chat.id, "user", "First question")

    with pytest.raises(FreeQuestionExhaustedError):
        await service.post_message(user.id, chat.id, "user", "Second question")


@pytest.mark.asyncio
async def test_lapsed_subscription_blocks_paid_chat(test_db):
    user = await create_user(test_db, free_questions_remaining=0)
    subscription = await create_subscription(test_db, user, status="active")
    service = ChatService(test_db)
    chat = await service.create_chat(user.id)
    await service.post_message(user.id, chat.id, "user", "Question")
    await service.post_message(user.id, chat.id, "assistant", "Answer")
    await service.post_message(user.id, chat.id, "user", "Follow-up")

    subscription.status = "canceled"
    await test_db.commit()

    for role in ("user", "assistant"):
        with pytest.raises(PaymentRequiredError):
            await service.post_message(user.id, chat.id, role, "After cancellation")


@pytest.mark.asyncio
async def test_lapsed_free_period_blocks_paid_chat(test_db):
    user = await create_user(test_db, free_questions_remaining=0, free_period_ends_at=days_from_now(1))
    service = ChatService(test_db)
    chat = await service.create_chat(user.id)
    assert chat.is_free is False

    user.free_period_ends_at = days_from_now(-1)
    await test_db.commit()

    with pytest.raises(PaymentRequiredError):
        await service.post_message(user.id, chat.id, "user", "Question")


@pytest.mark.asyncio
async def test_subscriber_posts_unlimited_messages_in_free_chat(test_db):
    """Upgrading lifts the single-question limit on an existing free chat"""
    user = await create_user(test_db, free_questions_remaining=1)
    service = ChatService(test_db)
    chat = await service.create_chat(user.id)
    await service.post_message(user.id, chat.id, "user", "Question")
    await service.post_message(user.id, chat.id, "assistant", "Answer")

    await create_subscription(test_db, user, status="active")

    for index in range(3):
        await service.post_message(user.id, chat.id, "user", f"Follow-up {index}")
        await service.post_message(user.id, chat.id, "assistant", f"Answer {index}")

    detail = await service.get_chat_with_messages(user.id, chat.id)
    assert detail["total"] == 8


@pytest.mark.asyncio
async def test_bypass_capability_posts_without_entitlement(test_db):
    admin = await create_user(test_db, role="admin", free_questions_remaining=0)
    chat = await ChatRepository(test_db).create_chat(admin.id, is_free=False)
    service = ChatService(test_db)

    message = await service.post_message(admin.id, chat.id, "assistant", "Anything", bypasses_entitlement=True)

    assert message.id is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("bypass", [True, False])
async def test_bypass_capability_is_decided_by_access_policy(test_db, bypass):
    user = await create_user(test_db, free_questions_remaining=1)
    service = ChatService(test_db)
    chat = await service.create_chat(user.id)

    with patch("services.chat_service.authorize_message", wraps=authorize_message) as policy:
        await service.post_message(user.id, chat.id, "user", "Question", bypasses_entitlement=bypass)

    policy.assert_called_once()
    assert policy.call_args.kwargs["bypasses_entitlement"] is bypass


@pytest.mark.asyncio
async def test_foreign_chat_is_not_found(test_db):
    owner = await create_user(test_db, email="owner@example.com", free_questions_remaining=1)
    other = await create_user(test_db, email="other@example.com")
    await create_subscription(test_db, other, status="active")
    service = ChatService(test_db)
    chat = await service.create_chat(owner.id)

    with pytest.raises(ChatNotFoundError):
        await service.post_message(other.id, chat.id, "user", "Hello")
    with pytest.raises(ChatNotFoundError):
        await service.post_message(other.id, chat.id, "user", "Hello", bypasses_entitlement=True)
    with pytest.raises(ChatNotFoundError):
        await service.get_chat_with_messages(other.id, chat.id)
    with pytest.raises(ChatNotFoundError):
        await service.post_message(owner.id, 12345, "user", "Hello")


# ---------------------------------------------------------------------------
# Ledger reads
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_chats_orders_by_latest_activity(test_db):
    user = await create_user(test_db)
    await create_subscription(test_db, user, status="active")
    service = ChatService(test_db)

    older = await service.create_chat(user.id)
    newer = await service.create_chat(user.id)
    await service.post_message(user.id, older.id, "user", "Bumps the older chat")

    chats, total = await service.list_chats(user.id)

    assert total == 2
    assert [chat["id"] for chat in chats] == [older.id, newer.id]
    assert chats[0]["last_message"] == "Bumps the older chat"
    assert chats[0]["message_count"] == 1
    assert chats[1]["last_message"] is None
    assert chats[1]["message_count"] == 0


@pytest.mark.asyncio
async def test_list_chats_paginates(test_db):
    user = await create_user(test_db)
    await create_subscription(test_db, user, status="active")
    service = ChatService(test_db)
    for _ in range(3):
        await service.create_chat(user.id)

    page, total = await service.list_chats(user.id, limit=2, offset=2)

    assert total == 3
    assert len(page) == 1


@pytest.mark.asyncio
async def test_messages_are_returned_in_creation_order(test_db):
    user = await create_user(test_db)
    await create_subscription(test_db, user, status="active")
    service = ChatService(test_db)
    chat = await service.create_chat(user.id)
    for index in range(4):
        await service.post_message(user.id, chat.id, "user" if index % 2 == 0 else "assistant", f"m{index}")

    detail = await service.get_chat_with_messages(user.id, chat.id, limit=3, offset=1)

    assert detail["total"] == 4
    assert [message.content for message in detail["messages"]] == ["m1", "m2", "m3"]
