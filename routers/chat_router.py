"""
Chat Router - API endpoints for chats and messages
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser, get_current_user
from backend.utils.responses import entitlement_error_response
from config.settings import settings
from database import get_db
from services.chat_service import ChatService
from services.errors import EntitlementError
from utils.shared_utils import isoformat

# Create chat router
chat_router = APIRouter(prefix="/api/chats", tags=["chats"])


# Request models
class MessageRequest(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=settings.max_message_length)


def _serialize_message(message) -> dict:
    return {
        "id": message.id,
        "chat_id": message.chat_id,
        "role": message.role,
        "content": message.content,
        "created_at": isoformat(message.created_at),
    }


@chat_router.post("", status_code=201)
async def create_chat(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Open a new chat; free chats consume one free question"""
    try:
        chat = await ChatService(db).create_chat(current_user.id)
    except EntitlementError as e:
        return entitlement_error_response(e)

    return {
        "id": chat.id,
        "created_at": isoformat(chat.created_at),
        "is_free": chat.is_free,
    }


@chat_router.get("")
async def list_chats(
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    offset: Optional[int] = Query(default=None, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Chat history for the current user, most recently active first"""
    chats, total = await ChatService(db).list_chats(current_user.id, limit, offset)
    return {
        "chats": [
            {
                "id": chat["id"],
                "created_at": isoformat(chat["created_at"]),
                "is_free": bool(chat["is_free"]),
                "last_message": chat["last_message"],
                "last_message_at": isoformat(chat["last_message_at"]),
                "message_count": chat["message_count"],
            }
            for chat in chats
        ],
        "total": total,
    }


@chat_router.get("/{chat_id}")
async def get_chat(
    chat_id: int,
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    offset: Optional[int] = Query(default=None, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """A chat with a page of its messages"""
    try:
        result = await ChatService(db).get_chat_with_messages(current_user.id, chat_id, limit, offset)
    except EntitlementError as e:
        return entitlement_error_response(e)

    chat = result["chat"]
    return {
        "chat": {
            "id": chat.id,
            "created_at": isoformat(chat.created_at),
            "is_free": chat.is_free,
        },
        "messages": [_serialize_message(message) for message in result["messages"]],
        "total": result["total"],
        "free_state": result["free_state"].value,
    }


@chat_router.post("/{chat_id}/messages", status_code=201)
async def post_message(
    chat_id: int,
    request: MessageRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Append a message to a chat.

    Without a subscription or free period only free chats accept messages,
    and only one user message followed by one assistant message.
    """
    try:
        message = await ChatService(db).post_message(
            user_id=current_user.id,
            chat_id=chat_id,
            role=request.role,
            content=request.content,
            bypasses_entitlement=current_user.bypasses_entitlement,
        )
    except EntitlementError as e:
        return entitlement_error_response(e)

    return _serialize_message(message)
