from __future__ import annotations

from typing import Protocol

import bcrypt


class PasswordHasher(Protocol):
    def encode(self, plaintext: str) -> str: ...

    def matches(self, plaintext: str, hashed: str) -> bool: ...


class BcryptHasher:
    """bcrypt with a configurable work factor. Used for OTP codes and staff passwords."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def encode(self, plaintext: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(plaintext.encode("utf-8"), salt).decode("utf-8")

    def matches(self, plaintext: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            # malformed stored hash
            return False
