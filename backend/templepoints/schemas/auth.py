from __future__ import annotations
from pydantic import BaseModel, EmailStr
from datetime import datetime

from templepoints.models.user import ROLE_ADMIN, ROLE_WARD_APPROVER

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class UserPublic(BaseModel):
    id: int
    email: EmailStr
    role: str
    ward_id: int | None = None
    created_at: datetime

class TokenPair(BaseModel):
    access: str
    refresh: str

class LoginResponse(BaseModel):
    success: bool = True
    user: UserPublic
    tokens: TokenPair

class AuthStatus(BaseModel):
    authenticated: bool
    user: UserPublic | None = None

class Identity(BaseModel):
    """Who is acting on a request. Resolved at the HTTP boundary and handed to services."""
    user_id: int
    role: str
    ward_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def can_approve_for(self, ward_id: int) -> bool:
        if self.is_admin:
            return True
        return self.role == ROLE_WARD_APPROVER and self.ward_id is not None and self.ward_id == ward_id
