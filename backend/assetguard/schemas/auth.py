"""Login, refresh and logout schemas"""
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = Field(None, description="Also revoke this refresh session if it belongs to the caller")


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int           # seconds until the access token expires
    refresh_expires_in: int   # seconds until the refresh token expires
    user_id: int
    role: str


class LogoutResponse(BaseModel):
    revoked_sessions: int
