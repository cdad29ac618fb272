from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from config.settings import settings, ROLE_USER
from database import Base
from utils.shared_utils import utcnow


def _default_free_questions() -> int:
    return settings.default_free_questions


class User(Base):
    """
    Account with its entitlement fields.

    free_questions_remaining is only ever decremented by chat creation
    or set outright by an administrator.
    """
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("free_questions_remaining >= 0", name="ck_users_free_questions_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(191), unique=True, nullable=False, index=True)
    role = Column(String(64), nullable=False, default=ROLE_USER)
    password_hash = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    blocked_at = Column(DateTime(timezone=True), nullable=True)
    free_questions_remaining = Column(Integer, nullable=False, default=_default_free_questions)
    free_period_ends_at = Column(DateTime(timezone=True), nullable=True)

    subscriptions = relationship(
        "Subscription",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    chats = relationship(
        "Chat",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Subscription(Base):
    """
    Payment-provider subscription record.
    Written by billing event ingestion only; read here for entitlements.
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("idx_subscriptions_user_status", "user_id", "status"),
        Index("idx_subscriptions_user_updated", "user_id", "updated_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider = Column(String(100), nullable=False, default="stripe")
    provider_subscription_id = Column(String(191), unique=True, nullable=False)
    provider_customer_id = Column(String(191), nullable=False)
    status = Column(String(50), nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="subscriptions")


class Chat(Base):
    """
    A conversation owned by one user.
    is_free is fixed when the chat is created and never changes.
    """
    __tablename__ = "chats"
    __table_args__ = (
        Index("idx_chats_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_free = Column(Boolean, nullable=False, default=False)

    user = relationship("User", back_populates="chats")
    messages = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="ck_messages_role"),
        Index("idx_messages_chat_created", "chat_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    chat = relationship("Chat", back_populates="messages")
