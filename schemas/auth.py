from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from domain.customer import StaffSession
from domain.enums import UserRole


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., alias="refreshToken", min_length=1)

    model_config = {"populate_by_name": True}


class AuthResponse(BaseModel):
    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")
    token_type: str = Field("Bearer", alias="tokenType")
    expires_in_seconds: int = Field(..., alias="expiresInSeconds")
    refresh_expires_in_seconds: int = Field(..., alias="refreshExpiresInSeconds")
    session_id: str = Field(..., alias="sessionId")
    user_id: str = Field(..., alias="userId")
    username: str
    role: UserRole

    model_config = {"populate_by_name": True}


class LogoutResponse(BaseModel):
    revoked_tokens: int = Field(..., alias="revokedTokens")

    model_config = {"populate_by_name": True}


class CurrentUserResponse(BaseModel):
    user_id: str = Field(..., alias="userId")
    username: str
    email: str
    role: UserRole
    last_login_at: Optional[datetime] = Field(None, alias="lastLoginAt")

    model_config = {"populate_by_name": True}


class SessionInfoResponse(BaseModel):
    session_id: str = Field(..., alias="sessionId")
    user_id: str = Field(..., alias="userId")
    role: UserRole
    created_at: datetime = Field(..., alias="createdAt")
    last_activity_at: datetime = Field(..., alias="lastActivityAt")
    expires_at: datetime = Field(..., alias="expiresAt")
    active: bool

    model_config = {"populate_by_name": True}

    @classmethod
    def from_domain(cls, session: StaffSession) -> "SessionInfoResponse":
        return cls(
            session_id=session.id,
            user_id=str(session.user_id),
            role=session.role,
            created_at=session.created_at,
            last_activity_at=session.last_activity_at,
            expires_at=session.expires_at,
            active=session.active,
        )


class SessionCountResponse(BaseModel):
    user_id: str = Field(..., alias="userId")
    active_sessions: int = Field(..., alias="activeSessions")

    model_config = {"populate_by_name": True}


class SessionTerminationResponse(BaseModel):
    user_id: str = Field(..., alias="userId")
    terminated_sessions: int = Field(..., alias="terminatedSessions")

    model_config = {"populate_by_name": True}
