"""
Onboarding application aggregate.

The aggregate owns its documents and consents and is the only place status transitions happen.
Every mutator validates the current status first, so a failed call leaves the aggregate untouched.
Domain events are appended to a pending list; the persistence boundary reads them after a
successful save, dispatches them, and calls clear_events(). The aggregate itself performs no I/O.

Not thread-safe: concurrent writers are serialized by the repository's optimistic version check.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from uuid import UUID

from pydantic import BaseModel

from domain.enums import (
    REQUIRED_CONSENTS,
    REQUIRED_DOCUMENTS,
    ApplicationStatus,
    ConsentType,
    DocumentStatus,
    DocumentType,
    Gender,
    OtpChannel,
)
from domain.errors import BusinessRuleViolationError, InvalidStateTransitionError
from domain.events import (
    AdditionalInfoProvided,
    AdditionalInfoRequested,
    ApplicationApproved,
    ApplicationAssigned,
    ApplicationCreated,
    ApplicationFlagged,
    ApplicationRejected,
    ApplicationSubmitted,
    ApplicationVerified,
    ConsentGranted,
    ConsentRevoked,
    DataDeletionRequested,
    DocumentUploaded,
    DomainEvent,
    OtpVerified,
)
from utils.clock import Clock, add_years

APPROVED_RETENTION_YEARS = 5
REJECTED_RETENTION_DAYS = 90

ANONYMIZED = "DELETED"
ANONYMIZED_EMAIL_DOMAIN = "anonymized.local"


class Address(BaseModel):
    street: str
    house_number: str
    postal_code: str
    city: str
    country: str

    model_config = {"frozen": True}


ANONYMIZED_ADDRESS = Address(
    street=ANONYMIZED, house_number="0", postal_code="0000XX", city=ANONYMIZED, country="XX"
)


# Email, phone and national id are unique columns, so their sentinels carry part of the application id.
def anonymized_identifier(application_id: UUID) -> str:
    return f"{ANONYMIZED}-{application_id.hex[:12]}"


def anonymized_email(application_id: UUID) -> str:
    return f"deleted-{application_id.hex}@{ANONYMIZED_EMAIL_DOMAIN}"


class Document(BaseModel):
    """Uploaded identity document. Lifecycle: UPLOADED -> VERIFIED | REJECTED.

    Immutable; status changes produce a copy that the aggregate swaps into its list.
    """

    id: UUID
    document_type: DocumentType
    storage_path: str
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    status: DocumentStatus = DocumentStatus.UPLOADED
    uploaded_at: datetime
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    model_config = {"frozen": True}

    def verified(self, verified_by: str, at: datetime) -> "Document":
        return self.model_copy(
            update={"status": DocumentStatus.VERIFIED, "verified_at": at, "verified_by": verified_by}
        )

    def rejected(self, reason: str, at: datetime) -> "Document":
        if not reason:
            raise ValueError("Rejection reason cannot be empty")
        return self.model_copy(
            update={"status": DocumentStatus.REJECTED, "verified_at": at, "rejection_reason": reason}
        )

    @property
    def is_verified(self) -> bool:
        return self.status == DocumentStatus.VERIFIED


class Consent(BaseModel):
    """GDPR consent record. Immutable; revocation produces a copy with revoked_at set."""

    id: UUID
    consent_type: ConsentType
    granted: bool
    granted_at: datetime
    consent_text: str
    version: str
    ip_address: Optional[str] = None
    revoked_at: Optional[datetime] = None

    model_config = {"frozen": True}

    @property
    def is_active(self) -> bool:
        return self.granted and self.revoked_at is None

    def revoked(self, at: datetime) -> "Consent":
        if self.revoked_at is not None:
            return self
        return self.model_copy(update={"revoked_at": at})


class OnboardingApplication:
    """Aggregate root for one onboarding case.

    Use `OnboardingApplication.create(...)` for a brand-new case (emits ApplicationCreated);
    the constructor itself only reconstitutes state loaded from storage.
    """

    def __init__(
        self,
        *,
        id: UUID,
        first_name: str,
        last_name: str,
        gender: Gender,
        date_of_birth: date,
        phone: str,
        email: str,
        nationality: str,
        residential_address: Address,
        social_security_number: str,
        status: ApplicationStatus = ApplicationStatus.INITIATED,
        version: int = 0,
        email_verified: bool = False,
        phone_verified: bool = False,
        documents: Iterable[Document] = (),
        consents: Iterable[Consent] = (),
        customer_id: Optional[UUID] = None,
        account_number: Optional[str] = None,
        requires_manual_review: bool = False,
        review_reason: Optional[str] = None,
        assigned_to: Optional[str] = None,
        marked_for_deletion: bool = False,
        data_retention_until: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        submitted_at: Optional[datetime] = None,
        approved_at: Optional[datetime] = None,
        rejected_at: Optional[datetime] = None,
        rejection_reason: Optional[str] = None,
        clock: Optional[Clock] = None,
    ):
        self._clock = clock or Clock()
        self.id = id
        self.first_name = first_name
        self.last_name = last_name
        self.gender = gender
        self.date_of_birth = date_of_birth
        self.phone = phone
        self.email = email
        self.nationality = nationality
        self.residential_address = residential_address
        self.social_security_number = social_security_number

        self._status = ApplicationStatus(status)
        self.version = version
        self._email_verified = email_verified
        self._phone_verified = phone_verified
        self._documents: list[Document] = list(documents)
        self._consents: list[Consent] = list(consents)

        self._customer_id = customer_id
        self._account_number = account_number
        self._requires_manual_review = requires_manual_review
        self._review_reason = review_reason
        self._assigned_to = assigned_to
        self._marked_for_deletion = marked_for_deletion
        self._data_retention_until = data_retention_until

        self.created_at = created_at or self._clock.now()
        self._submitted_at = submitted_at
        self._approved_at = approved_at
        self._rejected_at = rejected_at
        self._rejection_reason = rejection_reason

        self._pending_events: list[DomainEvent] = []

    @classmethod
    def create(
        cls,
        *,
        id: UUID,
        first_name: str,
        last_name: str,
        gender: Gender,
        date_of_birth: date,
        phone: str,
        email: str,
        nationality: str,
        residential_address: Address,
        social_security_number: str,
        clock: Optional[Clock] = None,
    ) -> "OnboardingApplication":
        required = {
            "id": id,
            "first_name": first_name,
            "last_name": last_name,
            "gender": gender,
            "date_of_birth": date_of_birth,
            "phone": phone,
            "email": email,
            "nationality": nationality,
            "residential_address": residential_address,
            "social_security_number": social_security_number,
        }
        missing = [name for name, value in required.items() if value is None or value == ""]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        application = cls(clock=clock, **required)
        application._record(
            ApplicationCreated(
                occurred_at=application.created_at, application_id=id, email=email, phone=phone
            )
        )
        return application

    # -- read-only views ---------------------------------------------------

    @property
    def status(self) -> ApplicationStatus:
        return self._status

    @property
    def email_verified(self) -> bool:
        return self._email_verified

    @property
    def phone_verified(self) -> bool:
        return self._phone_verified

    @property
    def documents(self) -> tuple[Document, ...]:
        return tuple(self._documents)

    @property
    def consents(self) -> tuple[Consent, ...]:
        return tuple(self._consents)

    @property
    def pending_events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._pending_events)

    @property
    def customer_id(self) -> Optional[UUID]:
        return self._customer_id

    @property
    def account_number(self) -> Optional[str]:
        return self._account_number

    @property
    def requires_manual_review(self) -> bool:
        return self._requires_manual_review

    @property
    def review_reason(self) -> Optional[str]:
        return self._review_reason

    @property
    def assigned_to(self) -> Optional[str]:
        return self._assigned_to

    @property
    def marked_for_deletion(self) -> bool:
        return self._marked_for_deletion

    @property
    def data_retention_until(self) -> Optional[datetime]:
        return self._data_retention_until

    @property
    def submitted_at(self) -> Optional[datetime]:
        return self._submitted_at

    @property
    def approved_at(self) -> Optional[datetime]:
        return self._approved_at

    @property
    def rejected_at(self) -> Optional[datetime]:
        return self._rejected_at

    @property
    def rejection_reason(self) -> Optional[str]:
        return self._rejection_reason

    def document_of(self, document_type: DocumentType) -> Optional[Document]:
        return next((d for d in self._documents if d.document_type == document_type), None)

    def has_all_required_documents(self) -> bool:
        present = {d.document_type for d in self._documents}
        return REQUIRED_DOCUMENTS <= present

    def has_active_consent(self, consent_type: ConsentType) -> bool:
        return any(c.consent_type == consent_type and c.is_active for c in self._consents)

    def has_required_consents(self) -> bool:
        return all(self.has_active_consent(t) for t in REQUIRED_CONSENTS)

    def retention_elapsed(self) -> bool:
        return self._data_retention_until is None or self._clock.now() >= self._data_retention_until

    # -- events ------------------------------------------------------------

    def clear_events(self) -> None:
        self._pending_events.clear()

    def _record(self, event: DomainEvent) -> None:
        self._pending_events.append(event)

    def _require(self, allowed: tuple[ApplicationStatus, ...], message: str) -> None:
        if self._status not in allowed:
            raise InvalidStateTransitionError(f"{message}. Current status: {self._status.value}")

    # -- applicant transitions ---------------------------------------------

    def verify_channel(self, channel: OtpChannel) -> None:
        """Mark a contact channel verified; the first verified channel moves INITIATED -> OTP_VERIFIED."""
        channel = OtpChannel(channel)
        if channel == OtpChannel.EMAIL:
            self._email_verified = True
        else:
            self._phone_verified = True

        if self._status == ApplicationStatus.INITIATED and (self._email_verified or self._phone_verified):
            self._status = ApplicationStatus.OTP_VERIFIED
            self._record(OtpVerified(occurred_at=self._clock.now(), application_id=self.id))

    def add_document(self, document: Document) -> None:
        self._require(
            (ApplicationStatus.OTP_VERIFIED, ApplicationStatus.DOCUMENTS_UPLOADED),
            "Cannot upload documents for this application",
        )
        self._documents = [d for d in self._documents if d.document_type != document.document_type]
        self._documents.append(document)

        if self.has_all_required_documents():
            self._status = ApplicationStatus.DOCUMENTS_UPLOADED

        self._record(
            DocumentUploaded(
                occurred_at=self._clock.now(),
                application_id=self.id,
                document_id=document.id,
                document_type=document.document_type,
            )
        )

    def add_consent(self, consent: Consent) -> None:
        self._consents.append(consent)
        self._record(
            ConsentGranted(
                occurred_at=self._clock.now(), application_id=self.id, consent_type=consent.consent_type
            )
        )

    def revoke_consent(self, consent_type: ConsentType) -> None:
        """Revoke every active consent of the given type. Consent history is kept."""
        if not self.has_active_consent(consent_type):
            raise BusinessRuleViolationError(f"No active {consent_type.value} consent to revoke")
        now = self._clock.now()
        self._consents = [
            c.revoked(now) if c.consent_type == consent_type and c.is_active else c for c in self._consents
        ]
        self._record(ConsentRevoked(occurred_at=now, application_id=self.id, consent_type=consent_type))

    def submit(self) -> None:
        self._require(
            (ApplicationStatus.DOCUMENTS_UPLOADED,),
            "Cannot submit application; documents must be uploaded first",
        )
        if not self.has_all_required_documents():
            raise InvalidStateTransitionError("Cannot submit application without all required documents")
        if not self.has_required_consents():
            raise InvalidStateTransitionError("Cannot submit application without required consents")

        now = self._clock.now()
        self._status = ApplicationStatus.SUBMITTED
        self._submitted_at = now
        self._record(ApplicationSubmitted(occurred_at=now, application_id=self.id, email=self.email))

    def provide_more_info(self, information: Optional[str]) -> None:
        self._require(
            (ApplicationStatus.REQUIRES_MORE_INFO,),
            "Can only provide additional info when more information was requested",
        )
        self._status = ApplicationStatus.UNDER_REVIEW
        self._review_reason = None
        self._record(
            AdditionalInfoProvided(occurred_at=self._clock.now(), application_id=self.id, information=information)
        )

    # -- compliance officer transitions -----------------------------------

    def assign_to(self, reviewer: str) -> None:
        self._require(
            (ApplicationStatus.SUBMITTED, ApplicationStatus.UNDER_REVIEW),
            "Can only assign applications that are submitted or under review",
        )
        self._assigned_to = reviewer
        if self._status == ApplicationStatus.SUBMITTED:
            self._status = ApplicationStatus.UNDER_REVIEW
        self._record(ApplicationAssigned(occurred_at=self._clock.now(), application_id=self.id, assigned_to=reviewer))

    def verify(self, verified_by: str) -> None:
        self._require((ApplicationStatus.UNDER_REVIEW,), "Can only verify applications that are under review")
        now = self._clock.now()
        self._documents = [d.verified(verified_by, now) for d in self._documents]
        self._status = ApplicationStatus.VERIFIED
        self._record(ApplicationVerified(occurred_at=now, application_id=self.id, verified_by=verified_by))

    def request_more_info(self, reason: Optional[str]) -> None:
        self._require(
            (ApplicationStatus.UNDER_REVIEW,),
            "Can only request additional info for applications under review",
        )
        self._status = ApplicationStatus.REQUIRES_MORE_INFO
        self._review_reason = reason
        self._record(AdditionalInfoRequested(occurred_at=self._clock.now(), application_id=self.id, reason=reason))

    def flag_suspicious(self, reason: Optional[str]) -> None:
        self._require((ApplicationStatus.UNDER_REVIEW,), "Can only flag applications that are under review")
        self._status = ApplicationStatus.FLAGGED_SUSPICIOUS
        self._review_reason = reason
        self._requires_manual_review = True
        self._record(ApplicationFlagged(occurred_at=self._clock.now(), application_id=self.id, reason=reason))

    # -- admin transitions -------------------------------------------------

    def approve(self, customer_id: UUID, account_number: str, approved_by: str) -> None:
        self._require(
            (ApplicationStatus.VERIFIED, ApplicationStatus.FLAGGED_SUSPICIOUS),
            "Can only approve verified or flagged applications",
        )
        now = self._clock.now()
        self._status = ApplicationStatus.APPROVED
        self._customer_id = customer_id
        self._account_number = account_number
        self._approved_at = now
        self._data_retention_until = add_years(now, APPROVED_RETENTION_YEARS)
        self._record(
            ApplicationApproved(
                occurred_at=now,
                application_id=self.id,
                customer_id=customer_id,
                account_number=account_number,
                approved_by=approved_by,
                email=self.email,
            )
        )

    def reject(self, reason: Optional[str]) -> None:
        self._require(
            (ApplicationStatus.UNDER_REVIEW, ApplicationStatus.VERIFIED, ApplicationStatus.FLAGGED_SUSPICIOUS),
            "Can only reject applications that are under review, verified, or flagged",
        )
        if reason is None or not reason.strip():
            raise BusinessRuleViolationError("Rejection reason is required")

        now = self._clock.now()
        self._status = ApplicationStatus.REJECTED
        self._rejected_at = now
        self._rejection_reason = reason
        self._data_retention_until = now + timedelta(days=REJECTED_RETENTION_DAYS)
        self._record(ApplicationRejected(occurred_at=now, application_id=self.id, reason=reason, email=self.email))

    # -- GDPR --------------------------------------------------------------

    def mark_for_deletion(self) -> None:
        self._require((ApplicationStatus.REJECTED,), "Can only mark rejected applications for deletion")
        self._marked_for_deletion = True
        self._record(DataDeletionRequested(occurred_at=self._clock.now(), application_id=self.id))

    def anonymize(self) -> None:
        """Overwrite personal data with sentinels. Emits nothing; driven by the retention sweep."""
        self.first_name = ANONYMIZED
        self.last_name = ANONYMIZED
        self.email = anonymized_email(self.id)
        self.phone = anonymized_identifier(self.id)
        self.social_security_number = anonymized_identifier(self.id)
        self.residential_address = ANONYMIZED_ADDRESS

    def __eq__(self, other: object) -> bool:
        return isinstance(other, OnboardingApplication) and other.id == self.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"OnboardingApplication(id={self.id}, status={self._status.value}, version={self.version})"
