from __future__ import annotations
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
import jwt
from templepoints.db import get_session
from templepoints.security import decode_token, SESSION_COOKIE
from templepoints.models.user import User
from templepoints.schemas.auth import Identity
from templepoints.services.errors import Unauthorized

security = HTTPBearer(auto_error=False)

async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_session),
) -> User | None:
    """Bearer token first, then the session cookie. None when neither resolves to a user."""
    token = credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    try:
        data = decode_token(token)
    except jwt.PyJWTError:
        return None
    if data.get("type") != "access":
        return None
    try:
        user_id = int(data.get("sub"))
    except (TypeError, ValueError):
        return None
    return await session.get(User, user_id)

async def get_identity(user: User | None = Depends(get_current_user)) -> Identity | None:
    if user is None:
        return None
    return Identity(user_id=user.id, role=user.role, ward_id=user.ward_id)

async def require_identity(identity: Identity | None = Depends(get_identity)) -> Identity:
    if identity is None:
        raise Unauthorized("Unauthorized")
    return identity
