from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser, get_current_user
from backend.utils.responses import entitlement_error_response
from database import get_db
from services.entitlement_service import EntitlementService
from services.errors import EntitlementError
from utils.shared_utils import isoformat

user_router = APIRouter(prefix="/api/users", tags=["users"])


@user_router.get("/me")
async def get_me(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Profile of the current user with their entitlements"""
    try:
        snapshot = await EntitlementService(db).get_snapshot(current_user.id)
    except EntitlementError as e:
        return entitlement_error_response(e)

    return {
        "id": current_user.id,
        "email": current_user.email,
        "role": current_user.role,
        "created_at": isoformat(current_user.created_at),
        **snapshot.to_dict(),
    }
