from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from domain.enums import OtpChannel, OtpStatus


class OtpVerification(BaseModel):
    """One issued OTP code. Created fresh per send; only the hash is ever stored."""

    id: UUID
    application_id: UUID
    channel: OtpChannel
    otp_hash: str
    expires_at: datetime
    attempts: int = 0
    status: OtpStatus = OtpStatus.PENDING
    created_at: datetime
    verified_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def has_attempts_left(self, max_attempts: int) -> bool:
        return self.attempts < max_attempts

    def mark_verified(self, at: datetime) -> None:
        self.status = OtpStatus.VERIFIED
        self.verified_at = at

    def mark_expired(self) -> None:
        self.status = OtpStatus.EXPIRED

    def mark_max_attempts_exceeded(self) -> None:
        self.status = OtpStatus.MAX_ATTEMPTS_EXCEEDED
