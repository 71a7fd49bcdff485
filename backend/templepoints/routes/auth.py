from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Header, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import jwt
from templepoints.db import get_session
from templepoints.auth_deps import get_current_user
from templepoints.models.user import User
from templepoints.schemas.auth import LoginRequest, LoginResponse, UserPublic, TokenPair, AuthStatus
from templepoints.security import (
    verify_password, make_access_token, make_refresh_token, decode_token, SESSION_COOKIE, ACCESS_TTL_MIN,
)

router = APIRouter(prefix="/api", tags=["auth"])

def _public(user: User) -> UserPublic:
    return UserPublic(id=user.id, email=user.email, role=user.role, ward_id=user.ward_id, created_at=user.created_at)

@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, response: Response, session: AsyncSession = Depends(get_session)):
    user = await session.scalar(select(User).where(User.email == payload.email.lower()))
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    tokens = TokenPair(access=make_access_token(user.id), refresh=make_refresh_token(user.id))
    # Browser pages ride on the cookie; API clients use the bearer token
    response.set_cookie(SESSION_COOKIE, tokens.access, max_age=ACCESS_TTL_MIN * 60, httponly=True, path="/", samesite="lax")
    return LoginResponse(user=_public(user), tokens=tokens)

@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE, path="/")
    return {"success": True, "message": "Logged out successfully"}

@router.post("/auth/refresh", response_model=TokenPair)
async def refresh(authorization: str | None = Header(None)):
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing refresh token")
    token = authorization.split(" ", 1)[1]
    try:
        data = decode_token(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if data.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Wrong token type")
    sub = int(data.get("sub"))
    return TokenPair(access=make_access_token(sub), refresh=make_refresh_token(sub))

@router.get("/user", response_model=UserPublic)
async def me(user: User | None = Depends(get_current_user)):
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return _public(user)

@router.get("/auth/status", response_model=AuthStatus)
async def auth_status(user: User | None = Depends(get_current_user)):
    if user is None:
        return AuthStatus(authenticated=False)
    return AuthStatus(authenticated=True, user=_public(user))
