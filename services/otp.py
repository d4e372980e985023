"""
OTP code generation, hashing and expiry policy.
Stateless: attempt counting and status live on OtpVerification records.
"""
from __future__ import annotations

import logging
import random
import secrets
from datetime import datetime, timedelta

from services.hashing import PasswordHasher
from utils.clock import Clock

logger = logging.getLogger(__name__)


class OtpService:
    def __init__(
        self,
        hasher: PasswordHasher,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        length: int = 6,
        expiry_minutes: int = 10,
    ):
        self._hasher = hasher
        self._clock = clock or Clock()
        self._rng = rng or secrets.SystemRandom()
        self.length = length
        self.expiry_minutes = expiry_minutes

    @property
    def validity_seconds(self) -> int:
        return self.expiry_minutes * 60

    def generate_code(self) -> str:
        """Uniform over 0..10^length-1, zero-padded."""
        value = self._rng.randrange(10**self.length)
        return str(value).zfill(self.length)

    def hash(self, code: str) -> str:
        if not code:
            raise ValueError("OTP cannot be null or empty")
        if len(code) != self.length:
            raise ValueError(f"OTP must be exactly {self.length} digits")
        return self._hasher.encode(code)

    def verify(self, candidate: str, otp_hash: str) -> bool:
        if not candidate or not otp_hash:
            raise ValueError("OTP and hash must not be null or empty")
        matched = self._hasher.matches(candidate, otp_hash)
        logger.debug("OTP verification result: %s", matched)
        return matched

    def expiry_from_now(self) -> datetime:
        return self._clock.now() + timedelta(minutes=self.expiry_minutes)

    def is_expired(self, expires_at: datetime | None) -> bool:
        if expires_at is None:
            return True
        return self._clock.now() > expires_at
