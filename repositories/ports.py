"""
Persistence ports consumed by the use-case services.
Implemented by repositories.sql (SQLAlchemy) and repositories.memory (tests, local wiring).
"""
from __future__ import annotations

from typing import Optional, Protocol
from uuid import UUID

from domain.application import OnboardingApplication
from domain.audit import AuditEvent
from domain.customer import Customer, RefreshToken, StaffSession, StaffUser
from domain.enums import ApplicationStatus, OtpChannel
from domain.otp import OtpVerification


class ApplicationRepository(Protocol):
    async def get(self, application_id: UUID) -> Optional[OnboardingApplication]: ...

    async def save(self, application: OnboardingApplication) -> OnboardingApplication:
        """Insert or update with an optimistic version check; bumps `application.version`.

        Raises ConcurrencyConflictError when the stored version moved on since load.
        """
        ...

    async def exists_by_social_security_number(self, ssn: str) -> bool: ...

    async def exists_by_email(self, email: str) -> bool: ...

    async def exists_by_phone(self, phone: str) -> bool: ...

    async def find_by_account_number(self, account_number: str) -> Optional[OnboardingApplication]: ...

    async def list_by_status(self, status: ApplicationStatus) -> list[OnboardingApplication]: ...

    async def count_by_status(self) -> dict[ApplicationStatus, int]: ...


class OtpRepository(Protocol):
    async def add(self, otp: OtpVerification) -> None: ...

    async def update(self, otp: OtpVerification) -> None:
        """Writes status and verification time; the attempt counter is only touched by record_failed_attempt."""
        ...

    async def record_failed_attempt(self, otp_id: UUID) -> int:
        """Increment the stored attempt counter in place and return the new value."""
        ...

    async def latest_for(self, application_id: UUID, channel: OtpChannel) -> Optional[OtpVerification]:
        """Most recently created record for the (application, channel) pair, any status."""
        ...


class CustomerRepository(Protocol):
    async def add(self, customer: Customer) -> None: ...

    async def exists_by_account_number(self, account_number: str) -> bool: ...

    async def exists_by_reference(self, customer_reference: str) -> bool: ...


class StaffUserRepository(Protocol):
    async def get(self, user_id: UUID) -> Optional[StaffUser]: ...

    async def get_by_username(self, username: str) -> Optional[StaffUser]: ...

    async def add(self, user: StaffUser) -> None: ...

    async def update(self, user: StaffUser) -> None: ...


class RefreshTokenRepository(Protocol):
    async def add(self, token: RefreshToken) -> None: ...

    async def get_by_hash(self, token_hash: str) -> Optional[RefreshToken]: ...

    async def revoke(self, token_id: UUID) -> None: ...

    async def revoke_all_for_user(self, user_id: UUID) -> int: ...


class StaffSessionRepository(Protocol):
    async def add(self, session: StaffSession) -> None: ...

    async def get(self, session_id: str) -> Optional[StaffSession]: ...

    async def update(self, session: StaffSession) -> None: ...

    async def list_active_for_user(self, user_id: UUID) -> list[StaffSession]:
        """Sessions of the user that have not been terminated, oldest first."""
        ...


class AuditRepository(Protocol):
    async def add(self, event: AuditEvent) -> None: ...

    async def list_for_application(self, application_id: UUID) -> list[AuditEvent]:
        """Entries in the order they occurred."""
        ...
