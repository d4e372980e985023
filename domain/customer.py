from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from domain.enums import UserRole


class Customer(BaseModel):
    """Customer created when an application is approved."""

    id: UUID
    customer_reference: str
    application_id: UUID
    first_name: str
    last_name: str
    email: str
    phone: str
    account_number: str
    created_at: datetime


class StaffUser(BaseModel):
    """Bank employee who logs in with a password (compliance officer or admin)."""

    id: UUID
    username: str
    email: str
    password_hash: str
    role: UserRole
    active: bool = True
    last_login_at: Optional[datetime] = None


class RefreshToken(BaseModel):
    id: UUID
    user_id: UUID
    token_hash: str
    expires_at: datetime
    created_at: datetime
    revoked_at: Optional[datetime] = None

    def is_usable(self, now: datetime) -> bool:
        return self.revoked_at is None and now < self.expires_at


class StaffSession(BaseModel):
    """Server-side record behind a staff access token's session id."""

    id: str
    user_id: UUID
    role: UserRole
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    terminated_at: Optional[datetime] = None
    termination_reason: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.terminated_at is None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_idle(self, now: datetime, idle_timeout_ms: int) -> bool:
        return (now - self.last_activity_at).total_seconds() * 1000 >= idle_timeout_ms

    def touch(self, now: datetime) -> None:
        self.last_activity_at = now

    def terminate(self, now: datetime, reason: str) -> None:
        if self.terminated_at is None:
            self.terminated_at = now
            self.termination_reason = reason
