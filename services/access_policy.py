"""
Access policy for chat creation and message posting.

Pure decision functions over an EntitlementSnapshot: no I/O, no side
effects. The chat service performs whatever bookkeeping a decision asks for.

Two separate mechanisms gate the free tier:
- the free question counter gates opening a free chat;
- per-role message counts gate posting into a free chat
  (one user message, then one assistant message).
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from services.entitlement_service import EntitlementSnapshot

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
MESSAGE_ROLES = (ROLE_USER, ROLE_ASSISTANT)


class DenialReason(str, Enum):
    PAYMENT_REQUIRED = "payment_required"
    FREE_QUESTION_EXHAUSTED = "free_question_exhausted"
    NO_USER_MESSAGE_YET = "no_user_message"


class FreeChatState(str, Enum):
    """Progress of a free chat through its single question/answer pair."""
    EMPTY = "empty"
    AWAITING_ANSWER = "awaiting_answer"
    ANSWERED = "answered"


@dataclass(frozen=True)
class MessageCounts:
    """Existing messages in a chat, by role."""
    user: int = 0
    assistant: int = 0

    @classmethod
    def from_mapping(cls, counts: Dict[str, int]) -> "MessageCounts":
        return cls(user=counts.get(ROLE_USER, 0), assistant=counts.get(ROLE_ASSISTANT, 0))

    @property
    def state(self) -> FreeChatState:
        if self.assistant > 0:
            return FreeChatState.ANSWERED
        if self.user > 0:
            return FreeChatState.AWAITING_ANSWER
        return FreeChatState.EMPTY


@dataclass(frozen=True)
class ChatCreationDecision:
    allowed: bool
    is_free_chat: bool = False
    consume_free_question: bool = False
    reason: Optional[DenialReason] = None


@dataclass(frozen=True)
class MessageDecision:
    allowed: bool
    reason: Optional[DenialReason] = None


def authorize_new_chat(snapshot: EntitlementSnapshot) -> ChatCreationDecision:
    """
    Decide whether a user may open a new chat.

    Access comes from a subscription, an active free period or a remaining
    free question. A chat opened without subscription or free period is a
    free chat and consumes one free question.
    """
    has_subscription = snapshot.has_subscription
    has_free_questions = snapshot.free_questions_remaining > 0

    if not (has_subscription or snapshot.free_period_active or has_free_questions):
        return ChatCreationDecision(allowed=False, reason=DenialReason.PAYMENT_REQUIRED)

    is_free_chat = not has_subscription and not snapshot.free_period_active
    return ChatCreationDecision(
        allowed=True,
        is_free_chat=is_free_chat,
        consume_free_question=is_free_chat and has_free_questions,
    )


def authorize_message(
    snapshot: EntitlementSnapshot,
    chat_is_free: bool,
    role: str,
    counts: MessageCounts,
    bypasses_entitlement: bool = False,
) -> MessageDecision:
    """
    Decide whether a message of the given role may be appended to a chat.

    Args:
        snapshot: Entitlements of the chat owner
        chat_is_free: The chat's is_free flag
        role: "user" or "assistant"
        counts: Messages already in the chat, by role
        bypasses_entitlement: Caller capability resolved upstream (admins)
    """
    if role not in MESSAGE_ROLES:
        raise ValueError(f"Unknown message role: {role!r}")

    if bypasses_entitlement:
        return MessageDecision(allowed=True)

    # The free question counter does not grant posting access
    if snapshot.has_subscription or snapshot.free_period_active:
        return MessageDecision(allowed=True)

    if not chat_is_free:
        return MessageDecision(allowed=False, reason=DenialReason.PAYMENT_REQUIRED)

    if role == ROLE_USER:
        if counts.user > 0:
            return MessageDecision(allowed=False, reason=DenialReason.FREE_QUESTION_EXHAUSTED)
        return MessageDecision(allowed=True)

    if counts.user == 0:
        return MessageDecision(allowed=False, reason=DenialReason.NO_USER_MESSAGE_YET)
    if counts.assistant > 0:
        return MessageDecision(allowed=False, reason=DenialReason.FREE_QUESTION_EXHAUSTED)
    return MessageDecision(allowed=True)
