"""
SQLAlchemy adapters for the persistence ports.

Each repository wraps the request-scoped AsyncSession from database.get_db; commit and
rollback stay with the session owner. Aggregates are mapped to flat records with the
address, documents and consents stored as JSON.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.application import Address, Consent, Document, OnboardingApplication
from domain.audit import AuditEvent
from domain.customer import Customer, RefreshToken, StaffSession, StaffUser
from domain.enums import ApplicationStatus, AuditActor, Gender, OtpChannel, OtpStatus, UserRole
from domain.errors import ConcurrencyConflictError, DuplicateIdentityError
from domain.otp import OtpVerification
from models import (
    ApplicationRecord,
    AuditEventRecord,
    CustomerRecord,
    OtpVerificationRecord,
    RefreshTokenRecord,
    StaffSessionRecord,
    StaffUserRecord,
)
from utils.clock import Clock

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _uuid(value: Optional[str]) -> Optional[UUID]:
    return UUID(value) if value else None


# -- applications -------------------------------------------------------------


# Unique identity columns in the order a collision is reported.
IDENTITY_COLUMNS = (
    ("social_security_number", "SSN", "Social Security Number"),
    ("email", "EMAIL", "Email"),
    ("phone", "PHONE", "Phone Number"),
)


def duplicate_identity(exc: IntegrityError) -> Optional[DuplicateIdentityError]:
    """Map a unique-constraint violation on an identity column to the business error, else None."""
    detail = str(exc.orig)
    for column, duplicate_type, display_name in IDENTITY_COLUMNS:
        if column in detail:
            return DuplicateIdentityError(
                f"Customer with this {display_name} already exists in the system", duplicate_type
            )
    return None


def application_values(application: OnboardingApplication) -> dict[str, Any]:
    return {
        "status": application.status.value,
        "first_name": application.first_name,
        "last_name": application.last_name,
        "gender": application.gender.value,
        "date_of_birth": application.date_of_birth,
        "phone": application.phone,
        "email": application.email,
        "nationality": application.nationality,
        "social_security_number": application.social_security_number,
        "residential_address": application.residential_address.model_dump(mode="json"),
        "documents": [d.model_dump(mode="json") for d in application.documents],
        "consents": [c.model_dump(mode="json") for c in application.consents],
        "email_verified": application.email_verified,
        "phone_verified": application.phone_verified,
        "customer_id": str(application.customer_id) if application.customer_id else None,
        "account_number": application.account_number,
        "requires_manual_review": application.requires_manual_review,
        "review_reason": application.review_reason,
        "assigned_to": application.assigned_to,
        "marked_for_deletion": application.marked_for_deletion,
        "data_retention_until": application.data_retention_until,
        "submitted_at": application.submitted_at,
        "approved_at": application.approved_at,
        "rejected_at": application.rejected_at,
        "rejection_reason": application.rejection_reason,
        "created_at": application.created_at,
    }


def application_from_record(record: ApplicationRecord, clock: Clock) -> OnboardingApplication:
    return OnboardingApplication(
        id=UUID(record.id),
        first_name=record.first_name,
        last_name=record.last_name,
        gender=Gender(record.gender),
        date_of_birth=record.date_of_birth,
        phone=record.phone,
        email=record.email,
        nationality=record.nationality,
        residential_address=Address.model_validate(record.residential_address),
        social_security_number=record.social_security_number,
        status=ApplicationStatus(record.status),
        version=record.version,
        email_verified=record.email_verified,
        phone_verified=record.phone_verified,
        documents=[Document.model_validate(d) for d in record.documents or []],
        consents=[Consent.model_validate(c) for c in record.consents or []],
        customer_id=_uuid(record.customer_id),
        account_number=record.account_number,
        requires_manual_review=record.requires_manual_review,
        review_reason=record.review_reason,
        assigned_to=record.assigned_to,
        marked_for_deletion=record.marked_for_deletion,
        data_retention_until=_aware(record.data_retention_until),
        created_at=_aware(record.created_at),
        submitted_at=_aware(record.submitted_at),
        approved_at=_aware(record.approved_at),
        rejected_at=_aware(record.rejected_at),
        rejection_reason=record.rejection_reason,
        clock=clock,
    )


class SqlApplicationRepository:
    def __init__(self, session: AsyncSession, clock: Clock | None = None):
        self._session = session
        self._clock = clock or Clock()

    async def get(self, application_id: UUID) -> Optional[OnboardingApplication]:
        record = await self._session.get(ApplicationRecord, str(application_id), populate_existing=True)
        return application_from_record(record, self._clock) if record else None

    async def save(self, application: OnboardingApplication) -> OnboardingApplication:
        try:
            return await self._write(application)
        except IntegrityError as exc:
            duplicate = duplicate_identity(exc)
            if duplicate is None:
                raise
            logger.warning(
                "Unique identity collision saving application %s: %s", application.id, duplicate.duplicate_type
            )
            raise duplicate from exc

    async def _write(self, application: OnboardingApplication) -> OnboardingApplication:
        values = application_values(application)
        if application.version == 0:
            self._session.add(ApplicationRecord(id=str(application.id), version=1, **values))
            await self._session.flush()
            application.version = 1
            return application

        result = await self._session.execute(
            update(ApplicationRecord)
            .where(ApplicationRecord.id == str(application.id), ApplicationRecord.version == application.version)
            .values(version=application.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning("Version conflict saving application %s at version %d", application.id, application.version)
            raise ConcurrencyConflictError(
                f"Application {application.id} was modified concurrently; reload and retry"
            )
        application.version += 1
        return application

    async def _exists(self, column, value: str) -> bool:
        found = await self._session.scalar(select(ApplicationRecord.id).where(column == value).limit(1))
        return found is not None

    async def exists_by_social_security_number(self, ssn: str) -> bool:
        return await self._exists(ApplicationRecord.social_security_number, ssn)

    async def exists_by_email(self, email: str) -> bool:
        return await self._exists(ApplicationRecord.email, email)

    async def exists_by_phone(self, phone: str) -> bool:
        return await self._exists(ApplicationRecord.phone, phone)

    async def find_by_account_number(self, account_number: str) -> Optional[OnboardingApplication]:
        record = await self._session.scalar(
            select(ApplicationRecord)
            .where(ApplicationRecord.account_number == account_number)
            .execution_options(populate_existing=True)
        )
        return application_from_record(record, self._clock) if record else None

    async def list_by_status(self, status: ApplicationStatus) -> list[OnboardingApplication]:
        result = await self._session.execute(
            select(ApplicationRecord)
            .where(ApplicationRecord.status == ApplicationStatus(status).value)
            .order_by(ApplicationRecord.created_at)
            .execution_options(populate_existing=True)
        )
        return [application_from_record(r, self._clock) for r in result.scalars().all()]

    async def count_by_status(self) -> dict[ApplicationStatus, int]:
        result = await self._session.execute(
            select(ApplicationRecord.status, func.count()).group_by(ApplicationRecord.status)
        )
        counts = {s: 0 for s in ApplicationStatus}
        for status, count in result.all():
            counts[ApplicationStatus(status)] = count
        return counts


# -- OTP ------------------------------------------------------------------------


def otp_from_record(record: OtpVerificationRecord) -> OtpVerification:
    return OtpVerification(
        id=UUID(record.id),
        application_id=UUID(record.application_id),
        channel=OtpChannel(record.channel),
        otp_hash=record.otp_hash,
        expires_at=_aware(record.expires_at),
        attempts=record.attempts,
        status=OtpStatus(record.status),
        created_at=_aware(record.created_at),
        verified_at=_aware(record.verified_at),
    )


class SqlOtpRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, otp: OtpVerification) -> None:
        self._session.add(
            OtpVerificationRecord(
                id=str(otp.id),
                application_id=str(otp.application_id),
                channel=otp.channel.value,
                otp_hash=otp.otp_hash,
                expires_at=otp.expires_at,
                attempts=otp.attempts,
                status=otp.status.value,
                created_at=otp.created_at,
                verified_at=otp.verified_at,
            )
        )
        await self._session.flush()

    async def update(self, otp: OtpVerification) -> None:
        record = await self._session.get(OtpVerificationRecord, str(otp.id))
        if record is None:
            raise LookupError(f"OTP record {otp.id} does not exist")
        record.status = otp.status.value
        record.verified_at = otp.verified_at
        await self._session.flush()

    async def record_failed_attempt(self, otp_id: UUID) -> int:
        await self._session.execute(
            update(OtpVerificationRecord)
            .where(OtpVerificationRecord.id == str(otp_id))
            .values(attempts=OtpVerificationRecord.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        attempts = await self._session.scalar(
            select(OtpVerificationRecord.attempts).where(OtpVerificationRecord.id == str(otp_id))
        )
        if attempts is None:
            raise LookupError(f"OTP record {otp_id} does not exist")
        return attempts

    async def latest_for(self, application_id: UUID, channel: OtpChannel) -> Optional[OtpVerification]:
        record = await self._session.scalar(
            select(OtpVerificationRecord)
            .where(
                OtpVerificationRecord.application_id == str(application_id),
                OtpVerificationRecord.channel == OtpChannel(channel).value,
            )
            .order_by(OtpVerificationRecord.created_at.desc())
            .limit(1)
        )
        return otp_from_record(record) if record else None


# -- customers and staff ------------------------------------------------------


class SqlCustomerRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, customer: Customer) -> None:
        self._session.add(
            CustomerRecord(
                id=str(customer.id),
                customer_reference=customer.customer_reference,
                application_id=str(customer.application_id),
                first_name=customer.first_name,
                last_name=customer.last_name,
                email=customer.email,
                phone=customer.phone,
                account_number=customer.account_number,
                created_at=customer.created_at,
            )
        )
        await self._session.flush()

    async def exists_by_account_number(self, account_number: str) -> bool:
        found = await self._session.scalar(
            select(CustomerRecord.id).where(CustomerRecord.account_number == account_number).limit(1)
        )
        return found is not None

    async def exists_by_reference(self, customer_reference: str) -> bool:
        found = await self._session.scalar(
            select(CustomerRecord.id).where(CustomerRecord.customer_reference == customer_reference).limit(1)
        )
        return found is not None


def staff_from_record(record: StaffUserRecord) -> StaffUser:
    return StaffUser(
        id=UUID(record.id),
        username=record.username,
        email=record.email,
        password_hash=record.password_hash,
        role=UserRole(record.role),
        active=record.active,
        last_login_at=_aware(record.last_login_at),
    )


class SqlStaffUserRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, user_id: UUID) -> Optional[StaffUser]:
        record = await self._session.get(StaffUserRecord, str(user_id))
        return staff_from_record(record) if record else None

    async def get_by_username(self, username: str) -> Optional[StaffUser]:
        record = await self._session.scalar(select(StaffUserRecord).where(StaffUserRecord.username == username))
        return staff_from_record(record) if record else None

    async def add(self, user: StaffUser) -> None:
        self._session.add(
            StaffUserRecord(
                id=str(user.id),
                username=user.username,
                email=user.email,
                password_hash=user.password_hash,
                role=user.role.value,
                active=user.active,
                last_login_at=user.last_login_at,
            )
        )
        await self._session.flush()

    async def update(self, user: StaffUser) -> None:
        record = await self._session.get(StaffUserRecord, str(user.id))
        if record is None:
            raise LookupError(f"Staff user {user.id} does not exist")
        record.email = user.email
        record.password_hash = user.password_hash
        record.role = user.role.value
        record.active = user.active
        record.last_login_at = user.last_login_at
        await self._session.flush()


class SqlRefreshTokenRepository:
    def __init__(self, session: AsyncSession, clock: Clock | None = None):
        self._session = session
        self._clock = clock or Clock()

    async def add(self, token: RefreshToken) -> None:
        self._session.add(
            RefreshTokenRecord(
                id=str(token.id),
                user_id=str(token.user_id),
                token_hash=token.token_hash,
                expires_at=token.expires_at,
                created_at=token.created_at,
                revoked_at=token.revoked_at,
            )
        )
        await self._session.flush()

    async def get_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        record = await self._session.scalar(select(RefreshTokenRecord).where(RefreshTokenRecord.token_hash == token_hash))
        if record is None:
            return None
        return RefreshToken(
            id=UUID(record.id),
            user_id=UUID(record.user_id),
            token_hash=record.token_hash,
            expires_at=_aware(record.expires_at),
            created_at=_aware(record.created_at),
            revoked_at=_aware(record.revoked_at),
        )

    async def revoke(self, token_id: UUID) -> None:
        await self._session.execute(
            update(RefreshTokenRecord)
            .where(RefreshTokenRecord.id == str(token_id), RefreshTokenRecord.revoked_at.is_(None))
            .values(revoked_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )

    async def revoke_all_for_user(self, user_id: UUID) -> int:
        result = await self._session.execute(
            update(RefreshTokenRecord)
            .where(RefreshTokenRecord.user_id == str(user_id), RefreshTokenRecord.revoked_at.is_(None))
            .values(revoked_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


def session_from_record(record: StaffSessionRecord) -> StaffSession:
    return StaffSession(
        id=record.id,
        user_id=UUID(record.user_id),
        role=UserRole(record.role),
        ip_address=record.ip_address,
        user_agent=record.user_agent,
        created_at=_aware(record.created_at),
        last_activity_at=_aware(record.last_activity_at),
        expires_at=_aware(record.expires_at),
        terminated_at=_aware(record.terminated_at),
        termination_reason=record.termination_reason,
    )


class SqlStaffSessionRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, staff_session: StaffSession) -> None:
        self._session.add(
            StaffSessionRecord(
                id=staff_session.id,
                user_id=str(staff_session.user_id),
                role=staff_session.role.value,
                ip_address=staff_session.ip_address,
                user_agent=staff_session.user_agent,
                created_at=staff_session.created_at,
                last_activity_at=staff_session.last_activity_at,
                expires_at=staff_session.expires_at,
            )
        )
        await self._session.flush()

    async def get(self, session_id: str) -> Optional[StaffSession]:
        record = await self._session.get(StaffSessionRecord, session_id, populate_existing=True)
        return session_from_record(record) if record else None

    async def update(self, staff_session: StaffSession) -> None:
        record = await self._session.get(StaffSessionRecord, staff_session.id)
        if record is None:
            raise LookupError(f"Staff session {staff_session.id} does not exist")
        record.last_activity_at = staff_session.last_activity_at
        record.terminated_at = staff_session.terminated_at
        record.termination_reason = staff_session.termination_reason
        await self._session.flush()

    async def list_active_for_user(self, user_id: UUID) -> list[StaffSession]:
        result = await self._session.execute(
            select(StaffSessionRecord)
            .where(StaffSessionRecord.user_id == str(user_id), StaffSessionRecord.terminated_at.is_(None))
            .order_by(StaffSessionRecord.created_at)
            .execution_options(populate_existing=True)
        )
        return [session_from_record(r) for r in result.scalars().all()]


# -- audit trail ----------------------------------------------------------------


class SqlAuditRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, event: AuditEvent) -> None:
        self._session.add(
            AuditEventRecord(
                id=str(event.id),
                application_id=str(event.application_id) if event.application_id else None,
                event_type=event.event_type,
                actor=event.actor.value,
                occurred_at=event.occurred_at,
                ip_address=event.ip_address,
                user_agent=event.user_agent,
                details=event.details,
            )
        )
        await self._session.flush()

    async def list_for_application(self, application_id: UUID) -> list[AuditEvent]:
        result = await self._session.execute(
            select(AuditEventRecord)
            .where(AuditEventRecord.application_id == str(application_id))
            .order_by(AuditEventRecord.occurred_at)
        )
        return [
            AuditEvent(
                id=UUID(r.id),
                application_id=_uuid(r.application_id),
                event_type=r.event_type,
                actor=AuditActor(r.actor),
                occurred_at=_aware(r.occurred_at),
                ip_address=r.ip_address,
                user_agent=r.user_agent,
                details=r.details or {},
            )
            for r in result.scalars().all()
        ]
