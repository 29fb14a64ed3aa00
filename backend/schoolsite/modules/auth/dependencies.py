from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import uuid

from schoolsite.core.database import get_db
from schoolsite.core.exceptions import AuthenticationError, InvalidTokenError
from schoolsite.core.logging_config import set_user_id
from schoolsite.core.security import decode_token
from schoolsite.models.user import User
from schoolsite.modules.auth.guard import require_admin

# auto_error=False so that a missing header surfaces as our own 401
security = HTTPBearer(auto_error=False)


async def resolve_user(db: AsyncSession, token: str) -> User:
    """Resolve an access token to a stored user"""
    payload = decode_token(token, expected_type="access")

    user_id = payload.get("sub")
    if not user_id:
        raise InvalidTokenError("Invalid token payload")

    try:
        uuid.UUID(user_id)
    except ValueError:
        raise InvalidTokenError("Invalid user ID format")

    user = await db.get(User, user_id)
    if not user:
        raise AuthenticationError("User not found")

    return user


def _bind_user(request: Request, user: User) -> None:
    request.state.user_id = str(user.id)
    set_user_id(str(user.id))


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """Current user, or None when there is no usable identity"""
    if not credentials:
        return None
    try:
        user = await resolve_user(db, credentials.credentials)
    except AuthenticationError:
        return None
    _bind_user(request, user)
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user"""
    if not credentials:
        raise AuthenticationError()
    user = await resolve_user(db, credentials.credentials)
    _bind_user(request, user)
    return user


async def get_current_admin(
    current_user: User = Depends(get_current_user)
) -> User:
    """Get current admin user"""
    return require_admin(current_user)
