"""
Domain events emitted by the onboarding aggregate and the use-case services.
Events are immutable pydantic models; `event_type` is the stable discriminator and `event_id` lets
at-least-once consumers deduplicate.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from domain.enums import ConsentType, DocumentType


class DomainEvent(BaseModel):
    event_id: UUID = Field(default_factory=uuid4)
    occurred_at: datetime
    event_type: str

    model_config = {"frozen": True}

    def to_message(self) -> dict[str, Any]:
        """JSON-safe payload handed to the event sink."""
        return self.model_dump(mode="json")


class ApplicationCreated(DomainEvent):
    event_type: Literal["APPLICATION_CREATED"] = "APPLICATION_CREATED"
    application_id: UUID
    email: str
    phone: str


class OtpSent(DomainEvent):
    event_type: Literal["OTP_SENT"] = "OTP_SENT"
    application_id: UUID
    destination: str
    channel: str


class OtpVerified(DomainEvent):
    event_type: Literal["OTP_VERIFIED"] = "OTP_VERIFIED"
    application_id: UUID


class DocumentUploaded(DomainEvent):
    event_type: Literal["DOCUMENT_UPLOADED"] = "DOCUMENT_UPLOADED"
    application_id: UUID
    document_id: UUID
    document_type: DocumentType


class ConsentGranted(DomainEvent):
    event_type: Literal["CONSENT_GRANTED"] = "CONSENT_GRANTED"
    application_id: UUID
    consent_type: ConsentType


class ConsentRevoked(DomainEvent):
    event_type: Literal["CONSENT_REVOKED"] = "CONSENT_REVOKED"
    application_id: UUID
    consent_type: ConsentType


class ApplicationSubmitted(DomainEvent):
    event_type: Literal["APPLICATION_SUBMITTED"] = "APPLICATION_SUBMITTED"
    application_id: UUID
    email: str


class ApplicationAssigned(DomainEvent):
    event_type: Literal["APPLICATION_ASSIGNED"] = "APPLICATION_ASSIGNED"
    application_id: UUID
    assigned_to: str


class ApplicationVerified(DomainEvent):
    event_type: Literal["APPLICATION_VERIFIED"] = "APPLICATION_VERIFIED"
    application_id: UUID
    verified_by: str


class AdditionalInfoRequested(DomainEvent):
    event_type: Literal["ADDITIONAL_INFO_REQUESTED"] = "ADDITIONAL_INFO_REQUESTED"
    application_id: UUID
    reason: Optional[str] = None


class ApplicationFlagged(DomainEvent):
    event_type: Literal["APPLICATION_FLAGGED"] = "APPLICATION_FLAGGED"
    application_id: UUID
    reason: Optional[str] = None


class AdditionalInfoProvided(DomainEvent):
    event_type: Literal["ADDITIONAL_INFO_PROVIDED"] = "ADDITIONAL_INFO_PROVIDED"
    application_id: UUID
    information: Optional[str] = None


class ApplicationApproved(DomainEvent):
    event_type: Literal["APPLICATION_APPROVED"] = "APPLICATION_APPROVED"
    application_id: UUID
    customer_id: UUID
    account_number: str
    approved_by: str
    email: str


class ApplicationRejected(DomainEvent):
    event_type: Literal["APPLICATION_REJECTED"] = "APPLICATION_REJECTED"
    application_id: UUID
    reason: str
    email: str


class DataDeletionRequested(DomainEvent):
    event_type: Literal["DATA_DELETION_REQUESTED"] = "DATA_DELETION_REQUESTED"
    application_id: UUID


class DataExportRequested(DomainEvent):
    event_type: Literal["DATA_EXPORT_REQUESTED"] = "DATA_EXPORT_REQUESTED"
    application_id: UUID
    requested_by: str


class CustomerCreated(DomainEvent):
    event_type: Literal["CUSTOMER_CREATED"] = "CUSTOMER_CREATED"
    customer_id: UUID
    application_id: UUID
    account_number: str
