"""
IBAN-style account number generation.

Format: country code + 2 check digits + bank code + 10-digit body, e.g. NL38ABCB0417164300.
Check digits use the ISO 13616 mod-97 scheme: letters map to 10..35, the number
(bank + body + country + "00") is reduced mod 97, and the check is 98 minus the remainder.
"""
from __future__ import annotations

import logging
import random
import secrets
from typing import Awaitable, Callable

from config import settings
from domain.errors import GenerationExhaustedError
from utils.masking import mask_account_number

logger = logging.getLogger(__name__)

BODY_LENGTH = 10
MAX_RETRIES = 10


def _to_digits(value: str) -> str:
    """A..Z -> 10..35; digits pass through."""
    out = []
    for ch in value.upper():
        if ch.isdigit():
            out.append(ch)
        elif "A" <= ch <= "Z":
            out.append(str(ord(ch) - ord("A") + 10))
        else:
            raise ValueError(f"Invalid character in account number: {ch!r}")
    return "".join(out)


def _mod97(digits: str) -> int:
    remainder = 0
    for ch in digits:
        remainder = (remainder * 10 + int(ch)) % 97
    return remainder


class AccountNumberGenerator:
    def __init__(
        self,
        country_code: str | None = None,
        bank_code: str | None = None,
        rng: random.Random | None = None,
    ):
        self.country_code = country_code or settings.iban_country_code
        self.bank_code = bank_code or settings.iban_bank_code
        self._rng = rng or secrets.SystemRandom()

    @staticmethod
    def calculate_check_digits(bank_code: str, body: str, country_code: str) -> str:
        remainder = _mod97(_to_digits(bank_code + body + country_code + "00"))
        return f"{98 - remainder:02d}"

    def _random_body(self) -> str:
        return "".join(str(self._rng.randrange(10)) for _ in range(BODY_LENGTH))

    def generate(self) -> str:
        body = self._random_body()
        check = self.calculate_check_digits(self.bank_code, body, self.country_code)
        account_number = f"{self.country_code}{check}{self.bank_code}{body}"
        logger.debug("Generated account number %s", mask_account_number(account_number))
        return account_number

    async def ensure_unique(self, exists: Callable[[str], Awaitable[bool]]) -> str:
        """Generate until `exists` reports a free number; gives up after MAX_RETRIES attempts."""
        for attempt in range(1, MAX_RETRIES + 1):
            candidate = self.generate()
            if not await exists(candidate):
                if attempt > 1:
                    logger.info("Unique account number found after %d attempts", attempt)
                return candidate
            logger.warning("Account number collision on attempt %d", attempt)

        logger.error("Failed to generate a unique account number after %d attempts", MAX_RETRIES)
        raise GenerationExhaustedError(
            f"Failed to generate unique account number after {MAX_RETRIES} attempts"
        )

    @staticmethod
    def validate(account_number: str | None) -> bool:
        if not account_number or len(account_number) < 5:
            return False
        cleaned = account_number.replace(" ", "").upper()
        rearranged = cleaned[4:] + cleaned[:4]
        try:
            return _mod97(_to_digits(rearranged)) == 1
        except ValueError:
            return False
