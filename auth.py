"""
Authentication dependencies: resolve the calling user from a bearer token
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth_utils import decode_jwt
from config.settings import settings, ROLE_ADMIN
from crud.user import UserRepository
from database import get_db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    """The authenticated caller, with its privileges resolved once."""
    id: int
    email: str
    role: str
    created_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def bypasses_entitlement(self) -> bool:
        """Administrators skip message entitlement checks"""
        return self.is_admin


def _extract_token(request: Request) -> Optional[str]:
    """
    Authentication priority:
    1. auth cookie (httpOnly cookie set by the login flow)
    2. Authorization header (Bearer token) for API consumers
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        return token
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization.replace("Bearer ", "", 1).strip() or None
    return None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """
    Dependency function to get current authenticated user.

    Raises 401 for a missing, invalid or expired token or an unknown user,
    and 403 for a blocked user.
    """
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing authentication token")

    payload = decode_jwt(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id_str = payload.get("sub")
    if not user_id_str:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    # Convert user_id to integer (JWT stores it as string)
    try:
        user_id = int(user_id_str)
    except (ValueError, TypeError):
        raise HTTPException(status_code=401, detail="Invalid user ID in token")

    user = await UserRepository(db).get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if user.blocked_at:
        logger.info(f"Blocked user {user.id} rejected")
        raise HTTPException(status_code=403, detail="User account is blocked")

    return CurrentUser(
        id=user.id,
        email=user.email,
        role=user.role,
        created_at=user.created_at,
    )


async def require_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Dependency for admin-only routes"""
    if not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user
