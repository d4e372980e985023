"""
Duplicate customer detection over national id, email and phone.
Checked in that priority order; the first hit wins.
"""
from __future__ import annotations

import logging
from enum import Enum

from domain.errors import DuplicateIdentityError
from repositories.ports import ApplicationRepository

logger = logging.getLogger(__name__)


class DuplicateType(str, Enum):
    SSN = "SSN"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    NONE = "NONE"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    DuplicateType.SSN: "Social Security Number",
    DuplicateType.EMAIL: "Email",
    DuplicateType.PHONE: "Phone Number",
    DuplicateType.NONE: "None",
}


def _require(ssn: str | None, email: str | None, phone: str | None) -> None:
    if ssn is None:
        raise ValueError("SSN cannot be None")
    if email is None:
        raise ValueError("Email cannot be None")
    if phone is None:
        raise ValueError("Phone cannot be None")


class DuplicateDetector:
    def __init__(self, repository: ApplicationRepository):
        self._repository = repository

    async def detect_duplicate_type(self, ssn: str, email: str, phone: str) -> DuplicateType:
        _require(ssn, email, phone)
        if await self._repository.exists_by_social_security_number(ssn):
            logger.info("Duplicate detected: SSN already exists")
            return DuplicateType.SSN
        if await self._repository.exists_by_email(email):
            logger.info("Duplicate detected: email already exists")
            return DuplicateType.EMAIL
        if await self._repository.exists_by_phone(phone):
            logger.info("Duplicate detected: phone number already exists")
            return DuplicateType.PHONE
        return DuplicateType.NONE

    async def detect_all_duplicates(self, ssn: str, email: str, phone: str) -> list[DuplicateType]:
        """Every matching field rather than the first; for diagnostics."""
        _require(ssn, email, phone)
        found = []
        if await self._repository.exists_by_social_security_number(ssn):
            found.append(DuplicateType.SSN)
        if await self._repository.exists_by_email(email):
            found.append(DuplicateType.EMAIL)
        if await self._repository.exists_by_phone(phone):
            found.append(DuplicateType.PHONE)
        if found:
            logger.info("Duplicates detected: %s", [d.value for d in found])
        return found

    async def check_duplicates(self, ssn: str, email: str, phone: str) -> None:
        duplicate = await self.detect_duplicate_type(ssn, email, phone)
        if duplicate != DuplicateType.NONE:
            logger.warning("Duplicate customer detected: type=%s", duplicate.value)
            raise DuplicateIdentityError(
                f"Customer with this {duplicate.display_name} already exists in the system",
                duplicate.value,
            )

    async def has_duplicates(self, ssn: str, email: str, phone: str) -> bool:
        return await self.detect_duplicate_type(ssn, email, phone) != DuplicateType.NONE
