"""
In-memory adapters for the persistence ports. Used by the test suite and for local wiring.
Applications are kept as detached ApplicationRecord snapshots so the optimistic version
check behaves exactly like the SQL adapter.
"""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from domain.application import OnboardingApplication
from domain.audit import AuditEvent
from domain.customer import Customer, RefreshToken, StaffSession, StaffUser
from domain.enums import ApplicationStatus, OtpChannel
from domain.errors import ConcurrencyConflictError, DuplicateIdentityError
from domain.otp import OtpVerification
from models import ApplicationRecord
from repositories.sql import IDENTITY_COLUMNS, application_from_record, application_values
from utils.clock import Clock


class InMemoryApplicationRepository:
    def __init__(self, clock: Clock | None = None):
        self._clock = clock or Clock()
        self._records: dict[UUID, ApplicationRecord] = {}

    async def get(self, application_id: UUID) -> Optional[OnboardingApplication]:
        record = self._records.get(application_id)
        return application_from_record(record, self._clock) if record else None

    async def save(self, application: OnboardingApplication) -> OnboardingApplication:
        stored = self._records.get(application.id)
        current_version = stored.version if stored else 0
        if application.version != current_version:
            raise ConcurrencyConflictError(
                f"Application {application.id} was modified concurrently; reload and retry"
            )
        self._check_unique(application)
        new_version = current_version + 1
        self._records[application.id] = ApplicationRecord(
            id=str(application.id), version=new_version, **application_values(application)
        )
        application.version = new_version
        return application

    def _check_unique(self, application: OnboardingApplication) -> None:
        values = application_values(application)
        others = [r for key, r in self._records.items() if key != application.id]
        for column, duplicate_type, display_name in IDENTITY_COLUMNS:
            if any(getattr(r, column) == values[column] for r in others):
                raise DuplicateIdentityError(
                    f"Customer with this {display_name} already exists in the system", duplicate_type
                )

    def _any(self, **match) -> bool:
        return any(all(getattr(r, k) == v for k, v in match.items()) for r in self._records.values())

    async def exists_by_social_security_number(self, ssn: str) -> bool:
        return self._any(social_security_number=ssn)

    async def exists_by_email(self, email: str) -> bool:
        return self._any(email=email)

    async def exists_by_phone(self, phone: str) -> bool:
        return self._any(phone=phone)

    async def find_by_account_number(self, account_number: str) -> Optional[OnboardingApplication]:
        for record in self._records.values():
            if record.account_number == account_number:
                return application_from_record(record, self._clock)
        return None

    async def list_by_status(self, status: ApplicationStatus) -> list[OnboardingApplication]:
        records = [r for r in self._records.values() if r.status == ApplicationStatus(status).value]
        records.sort(key=lambda r: r.created_at)
        return [application_from_record(r, self._clock) for r in records]

    async def count_by_status(self) -> dict[ApplicationStatus, int]:
        counts = {s: 0 for s in ApplicationStatus}
        for record in self._records.values():
            counts[ApplicationStatus(record.status)] += 1
        return counts


class InMemoryOtpRepository:
    def __init__(self) -> None:
        self.records: list[OtpVerification] = []

    async def add(self, otp: OtpVerification) -> None:
        self.records.append(otp.model_copy(deep=True))

    async def update(self, otp: OtpVerification) -> None:
        for i, existing in enumerate(self.records):
            if existing.id == otp.id:
                self.records[i] = otp.model_copy(update={"attempts": existing.attempts}, deep=True)
                return
        raise LookupError(f"OTP record {otp.id} does not exist")

    async def record_failed_attempt(self, otp_id: UUID) -> int:
        for existing in self.records:
            if existing.id == otp_id:
                existing.attempts += 1
                return existing.attempts
        raise LookupError(f"OTP record {otp_id} does not exist")

    async def latest_for(self, application_id: UUID, channel: OtpChannel) -> Optional[OtpVerification]:
        # list order is creation order; the last match is the newest
        for otp in reversed(self.records):
            if otp.application_id == application_id and otp.channel == channel:
                return otp.model_copy(deep=True)
        return None


class InMemoryCustomerRepository:
    def __init__(self) -> None:
        self.customers: dict[UUID, Customer] = {}

    async def add(self, customer: Customer) -> None:
        self.customers[customer.id] = customer

    async def exists_by_account_number(self, account_number: str) -> bool:
        return any(c.account_number == account_number for c in self.customers.values())

    async def exists_by_reference(self, customer_reference: str) -> bool:
        return any(c.customer_reference == customer_reference for c in self.customers.values())


class InMemoryStaffUserRepository:
    def __init__(self) -> None:
        self.users: dict[UUID, StaffUser] = {}

    async def get(self, user_id: UUID) -> Optional[StaffUser]:
        user = self.users.get(user_id)
        return user.model_copy() if user else None

    async def get_by_username(self, username: str) -> Optional[StaffUser]:
        user = next((u for u in self.users.values() if u.username == username), None)
        return user.model_copy() if user else None

    async def add(self, user: StaffUser) -> None:
        self.users[user.id] = user.model_copy()

    async def update(self, user: StaffUser) -> None:
        if user.id not in self.users:
            raise LookupError(f"Staff user {user.id} does not exist")
        self.users[user.id] = user.model_copy()


class InMemoryRefreshTokenRepository:
    def __init__(self, clock: Clock | None = None):
        self._clock = clock or Clock()
        self.tokens: dict[UUID, RefreshToken] = {}

    async def add(self, token: RefreshToken) -> None:
        self.tokens[token.id] = token.model_copy()

    async def get_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        token = next((t for t in self.tokens.values() if t.token_hash == token_hash), None)
        return token.model_copy() if token else None

    async def revoke(self, token_id: UUID) -> None:
        token = self.tokens.get(token_id)
        if token is not None and token.revoked_at is None:
            token.revoked_at = self._clock.now()

    async def revoke_all_for_user(self, user_id: UUID) -> int:
        now = self._clock.now()
        revoked = 0
        for token in self.tokens.values():
            if token.user_id == user_id and token.revoked_at is None:
                token.revoked_at = now
                revoked += 1
        return revoked


class InMemoryStaffSessionRepository:
    def __init__(self) -> None:
        self.sessions: dict[str, StaffSession] = {}

    async def add(self, session: StaffSession) -> None:
        self.sessions[session.id] = session.model_copy()

    async def get(self, session_id: str) -> Optional[StaffSession]:
        session = self.sessions.get(session_id)
        return session.model_copy() if session else None

    async def update(self, session: StaffSession) -> None:
        if session.id not in self.sessions:
            raise LookupError(f"Staff session {session.id} does not exist")
        self.sessions[session.id] = session.model_copy()

    async def list_active_for_user(self, user_id: UUID) -> list[StaffSession]:
        found = [s for s in self.sessions.values() if s.user_id == user_id and s.active]
        found.sort(key=lambda s: s.created_at)
        return [s.model_copy() for s in found]


class InMemoryAuditRepository:
    def __init__(self) -> None:
        self.entries: list[AuditEvent] = []

    async def add(self, event: AuditEvent) -> None:
        self.entries.append(event)

    async def list_for_application(self, application_id: UUID) -> list[AuditEvent]:
        return [e for e in self.entries if e.application_id == application_id]

    def types(self) -> list[str]:
        return [e.event_type for e in self.entries]
