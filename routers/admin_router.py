"""
Admin Router - user management and entitlement overrides
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser, require_admin
from backend.utils.responses import entitlement_error_response
from database import get_db
from services.admin_service import AdminService
from services.errors import EntitlementError
from utils.shared_utils import isoformat

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


class EntitlementsRequest(BaseModel):
    free_questions_remaining: Optional[int] = Field(default=None, ge=0)
    free_period_ends_at: Optional[datetime] = None


@admin_router.get("/users")
async def list_users(
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    users = await AdminService(db).list_users()
    return {
        "users": [
            {
                "id": user.id,
                "email": user.email,
                "role": user.role,
                "created_at": isoformat(user.created_at),
                "blocked_at": isoformat(user.blocked_at),
                "free_questions_remaining": user.free_questions_remaining,
                "free_period_ends_at": isoformat(user.free_period_ends_at),
            }
            for user in users
        ]
    }


@admin_router.patch("/users/{user_id}/entitlements", status_code=204)
async def set_entitlements(
    user_id: int,
    request: EntitlementsRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Set free questions and/or the free period end outright.
    Only fields present in the body are changed; an explicit null
    free_period_ends_at ends the free period.
    """
    try:
        await AdminService(db).set_entitlements(user_id, request.model_dump(exclude_unset=True))
    except EntitlementError as e:
        return entitlement_error_response(e)
    return Response(status_code=204)


@admin_router.patch("/users/{user_id}/block", status_code=204)
async def block_user(
    user_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        await AdminService(db).block_user(admin.id, user_id)
    except EntitlementError as e:
        return entitlement_error_response(e)
    return Response(status_code=204)


@admin_router.patch("/users/{user_id}/unblock", status_code=204)
async def unblock_user(
    user_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        await AdminService(db).unblock_user(admin.id, user_id)
    except EntitlementError as e:
        return entitlement_error_response(e)
    return Response(status_code=204)


@admin_router.delete("/users/{user_id}", status_code=204)
async def delete_user(
    user_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete an account with its chats, messages and subscriptions"""
    try:
        await AdminService(db).delete_user(admin.id, user_id)
    except EntitlementError as e:
        return entitlement_error_response(e)
    return Response(status_code=204)
