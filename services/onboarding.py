"""
Applicant-side use cases: create, OTP send/verify, documents, consents, submit, follow-up info.

Every mutation follows the same sequence: load the aggregate, apply the transition,
save with the optimistic version check, then publish the pending events and clear them.
Commit and rollback belong to the caller's session (database.get_db).
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Optional
from uuid import UUID

from domain.application import Consent, Document, OnboardingApplication
from domain.enums import ApplicationStatus, AuditActor, ConsentType, DocumentType, OtpChannel, OtpStatus
from domain.errors import (
    BusinessRuleViolationError,
    InvalidOtpError,
    InvalidStateTransitionError,
    OtpExpiredError,
    OtpMaxAttemptsError,
    ResourceNotFoundError,
)
from domain.events import OtpSent
from domain.otp import OtpVerification
from repositories.ports import ApplicationRepository, OtpRepository
from schemas.application import ApplicationCreate
from services import audit as audit_types
from services.audit import AuditTrail
from services.document_store import DocumentStore
from services.duplicates import DuplicateDetector
from services.event_sink import EventSink, publish_all
from services.notifications import OtpNotifier
from services.otp import OtpService
from services.tokens import TokenService
from utils.clock import Clock
from utils.masking import mask_contact

logger = logging.getLogger(__name__)

MINIMUM_AGE_YEARS = 18
MAX_DOCUMENT_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class OtpDispatch:
    channel: OtpChannel
    destination: str  # masked
    expires_in_seconds: int


async def load_application(repository: ApplicationRepository, application_id: UUID) -> OnboardingApplication:
    application = await repository.get(application_id)
    if application is None:
        raise ResourceNotFoundError("Application", application_id)
    return application


async def save_and_publish(
    repository: ApplicationRepository, events: EventSink, application: OnboardingApplication
) -> OnboardingApplication:
    """Persist, then dispatch pending events; events are cleared only after a successful save."""
    await repository.save(application)
    publish_all(events, application.pending_events)
    application.clear_events()
    return application


class OnboardingService:
    def __init__(
        self,
        applications: ApplicationRepository,
        otps: OtpRepository,
        otp_service: OtpService,
        tokens: TokenService,
        events: EventSink,
        audit: AuditTrail,
        documents: DocumentStore,
        notifier: OtpNotifier,
        clock: Clock | None = None,
        max_otp_attempts: int = 3,
    ):
        self._applications = applications
        self._otps = otps
        self._otp_service = otp_service
        self._tokens = tokens
        self._events = events
        self._audit = audit
        self._documents = documents
        self._notifier = notifier
        self._clock = clock or Clock()
        self._duplicates = DuplicateDetector(applications)
        self.max_otp_attempts = max_otp_attempts

    async def get_application(self, application_id: UUID) -> OnboardingApplication:
        return await load_application(self._applications, application_id)

    async def create_application(self, command: ApplicationCreate) -> OnboardingApplication:
        logger.info("Creating onboarding application for %s", mask_contact(command.email))
        self._check_minimum_age(command.date_of_birth)
        await self._duplicates.check_duplicates(command.social_security_number, command.email, command.phone)

        application = OnboardingApplication.create(
            id=uuid.uuid4(),
            first_name=command.first_name.strip(),
            last_name=command.last_name.strip(),
            gender=command.gender,
            date_of_birth=command.date_of_birth,
            phone=command.phone,
            email=command.email.lower(),
            nationality=command.nationality.upper(),
            residential_address=command.residential_address.to_domain(),
            social_security_number=command.social_security_number,
            clock=self._clock,
        )
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.APPLICATION_CREATED,
            AuditActor.SYSTEM,
            application.id,
            {"email": mask_contact(application.email), "phone": mask_contact(application.phone)},
        )
        logger.info("Created application %s", application.id)
        return application

    def _check_minimum_age(self, date_of_birth: date) -> None:
        today = self._clock.now().date()
        try:
            cutoff = today.replace(year=today.year - MINIMUM_AGE_YEARS)
        except ValueError:
            cutoff = today.replace(year=today.year - MINIMUM_AGE_YEARS, day=28)
        if date_of_birth > cutoff:
            raise BusinessRuleViolationError(f"Applicant must be at least {MINIMUM_AGE_YEARS} years old")

    # -- OTP ---------------------------------------------------------------

    async def send_otp(self, application_id: UUID, channel: OtpChannel) -> OtpDispatch:
        application = await load_application(self._applications, application_id)
        destination = application.email if channel == OtpChannel.EMAIL else application.phone

        code = self._otp_service.generate_code()
        now = self._clock.now()
        otp = OtpVerification(
            id=uuid.uuid4(),
            application_id=application_id,
            channel=channel,
            otp_hash=self._otp_service.hash(code),
            expires_at=self._otp_service.expiry_from_now(),
            created_at=now,
        )
        await self._otps.add(otp)
        self._notifier.send_code(channel, destination, code)

        masked = mask_contact(destination)
        self._events.publish(
            OtpSent(occurred_at=now, application_id=application_id, destination=masked, channel=channel.value)
        )
        await self._audit.record(
            audit_types.OTP_SENT, AuditActor.SYSTEM, application_id, {"channel": channel.value, "destination": masked}
        )
        logger.info("Sent OTP for application %s via %s", application_id, channel.value)
        return OtpDispatch(channel=channel, destination=masked, expires_in_seconds=self._otp_service.validity_seconds)

    async def verify_otp(self, application_id: UUID, channel: OtpChannel, code: str) -> str:
        """Check a code against the newest OTP record for the channel; returns an applicant session token.

        Failed attempts are written through the OTP repository before raising; the raised errors
        carry commit_on_failure so the request session keeps those writes.
        """
        application = await load_application(self._applications, application_id)
        otp = await self._otps.latest_for(application_id, channel)
        if otp is None or otp.status == OtpStatus.VERIFIED:
            raise BusinessRuleViolationError("No pending OTP found for this channel. Please request a new OTP.")

        if otp.is_expired(self._clock.now()):
            otp.mark_expired()
            await self._otps.update(otp)
            await self._otp_failed(application_id, channel, "OTP expired")
            logger.info("OTP expired for application %s", application_id)
            raise OtpExpiredError("OTP has expired. Please request a new one.")

        if not otp.has_attempts_left(self.max_otp_attempts):
            otp.mark_max_attempts_exceeded()
            await self._otps.update(otp)
            await self._otp_failed(application_id, channel, "Max attempts exceeded")
            logger.warning("OTP attempts exhausted for application %s", application_id)
            raise OtpMaxAttemptsError("Maximum OTP verification attempts exceeded. Please request a new OTP.")

        if not self._otp_service.verify(code, otp.otp_hash):
            attempts = await self._otps.record_failed_attempt(otp.id)
            remaining = self.max_otp_attempts - attempts
            await self._otp_failed(application_id, channel, "Invalid OTP", attempts=attempts)
            logger.info("Invalid OTP for application %s (%d attempts left)", application_id, remaining)
            raise InvalidOtpError(f"Invalid OTP. {remaining} attempt(s) remaining.")

        otp.mark_verified(self._clock.now())
        await self._otps.update(otp)

        application.verify_channel(channel)
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.OTP_VERIFIED, AuditActor.APPLICANT, application_id, {"channel": channel.value}
        )
        logger.info("OTP verified for application %s on %s", application_id, channel.value)
        return self._tokens.issue_applicant_token(application_id)

    async def _otp_failed(self, application_id: UUID, channel: OtpChannel, reason: str, **details) -> None:
        await self._audit.record(
            audit_types.OTP_VERIFICATION_FAILED,
            AuditActor.APPLICANT,
            application_id,
            {"channel": channel.value, "reason": reason, **details},
        )

    # -- documents and consents -------------------------------------------

    async def upload_document(
        self,
        application_id: UUID,
        document_type: DocumentType,
        filename: str,
        content: bytes,
        content_type: Optional[str],
    ) -> Document:
        if not content:
            raise BusinessRuleViolationError("Document content is required")
        if len(content) > MAX_DOCUMENT_BYTES:
            raise BusinessRuleViolationError("Document size exceeds maximum limit of 10MB")
        if not filename or not filename.strip():
            raise BusinessRuleViolationError("Filename is required")

        application = await load_application(self._applications, application_id)
        # checked before touching storage so a refused upload leaves no orphaned bytes
        if application.status not in (ApplicationStatus.OTP_VERIFIED, ApplicationStatus.DOCUMENTS_UPLOADED):
            raise InvalidStateTransitionError(
                f"Cannot upload documents for this application. Current status: {application.status.value}"
            )

        storage_path = self._documents.put(application_id, filename, content, content_type)
        previous = application.document_of(document_type)
        document = Document(
            id=uuid.uuid4(),
            document_type=document_type,
            storage_path=storage_path,
            mime_type=content_type,
            file_size=len(content),
            uploaded_at=self._clock.now(),
        )
        application.add_document(document)
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.DOCUMENT_UPLOADED,
            AuditActor.APPLICANT,
            application_id,
            {"documentId": str(document.id), "documentType": document_type.value, "fileSize": len(content)},
        )
        if previous is not None:
            self._documents.delete(previous.storage_path)
        logger.info("Uploaded %s document %s for application %s", document_type.value, document.id, application_id)
        return document

    async def grant_consent(
        self,
        application_id: UUID,
        consent_type: ConsentType,
        consent_text: str,
        version: str,
        ip_address: Optional[str] = None,
    ) -> Consent:
        application = await load_application(self._applications, application_id)
        consent = Consent(
            id=uuid.uuid4(),
            consent_type=consent_type,
            granted=True,
            granted_at=self._clock.now(),
            consent_text=consent_text,
            version=version,
            ip_address=ip_address,
        )
        application.add_consent(consent)
        await save_and_publish(self._applications, self._events, application)
        logger.info("Recorded %s consent for application %s", consent_type.value, application_id)
        return consent

    async def revoke_consent(self, application_id: UUID, consent_type: ConsentType) -> OnboardingApplication:
        application = await load_application(self._applications, application_id)
        application.revoke_consent(consent_type)
        await save_and_publish(self._applications, self._events, application)
        logger.info("Revoked %s consent for application %s", consent_type.value, application_id)
        return application

    # -- lifecycle ---------------------------------------------------------

    async def submit(self, application_id: UUID) -> OnboardingApplication:
        application = await load_application(self._applications, application_id)
        application.submit()
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.APPLICATION_SUBMITTED,
            AuditActor.APPLICANT,
            application_id,
            {"submittedAt": application.submitted_at.isoformat()},
        )
        logger.info("Submitted application %s for review", application_id)
        return application

    async def provide_more_info(self, application_id: UUID, information: str) -> OnboardingApplication:
        application = await load_application(self._applications, application_id)
        application.provide_more_info(information)
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.ADDITIONAL_INFO_PROVIDED, AuditActor.APPLICANT, application_id, {"length": len(information)}
        )
        logger.info("Additional info provided for application %s", application_id)
        return application
