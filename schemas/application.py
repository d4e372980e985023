from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from domain.application import Address, OnboardingApplication
from domain.enums import ApplicationStatus, ConsentType, DocumentStatus, DocumentType, Gender, OtpChannel


class AddressSchema(BaseModel):
    street: str = Field(..., min_length=1, max_length=200)
    house_number: str = Field(..., alias="houseNumber", min_length=1, max_length=20)
    postal_code: str = Field(..., alias="postalCode", min_length=1, max_length=20)
    city: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=2, max_length=2)

    model_config = {"populate_by_name": True}

    def to_domain(self) -> Address:
        return Address(
            street=self.street,
            house_number=self.house_number,
            postal_code=self.postal_code,
            city=self.city,
            country=self.country.upper(),
        )


class ApplicationCreate(BaseModel):
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    gender: Gender
    date_of_birth: date = Field(..., alias="dateOfBirth")
    phone: str = Field(..., pattern=r"^\+?[0-9]{8,15}$")
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    nationality: str = Field(..., min_length=2, max_length=2)
    residential_address: AddressSchema = Field(..., alias="residentialAddress")
    social_security_number: str = Field(..., alias="socialSecurityNumber", min_length=4, max_length=64)

    model_config = {"populate_by_name": True}


class ApplicationCreatedResponse(BaseModel):
    application_id: str = Field(..., alias="applicationId")
    status: ApplicationStatus
    message: str

    model_config = {"populate_by_name": True}


class SendOtpRequest(BaseModel):
    channel: OtpChannel


class SendOtpResponse(BaseModel):
    channel: OtpChannel
    expires_in_seconds: int = Field(..., alias="expiresInSeconds")
    message: str

    model_config = {"populate_by_name": True}


class VerifyOtpRequest(BaseModel):
    channel: OtpChannel
    otp: str = Field(..., pattern=r"^[0-9]{6}$")


class TokenResponse(BaseModel):
    access_token: str = Field(..., alias="accessToken")
    token_type: str = Field("Bearer", alias="tokenType")
    expires_in_seconds: int = Field(..., alias="expiresInSeconds")

    model_config = {"populate_by_name": True}


class ConsentRequest(BaseModel):
    consent_type: ConsentType = Field(..., alias="consentType")
    consent_text: str = Field(..., alias="consentText", min_length=1)
    version: str = Field(..., min_length=1, max_length=20)

    model_config = {"populate_by_name": True}


class ProvideInfoRequest(BaseModel):
    information: str = Field(..., min_length=1, max_length=5000)


class DocumentResponse(BaseModel):
    id: str
    document_type: DocumentType = Field(..., alias="documentType")
    status: DocumentStatus
    mime_type: Optional[str] = Field(None, alias="mimeType")
    file_size: Optional[int] = Field(None, alias="fileSize")
    uploaded_at: datetime = Field(..., alias="uploadedAt")
    verified_at: Optional[datetime] = Field(None, alias="verifiedAt")

    model_config = {"populate_by_name": True}


class ConsentResponse(BaseModel):
    consent_type: ConsentType = Field(..., alias="consentType")
    version: str
    active: bool
    granted_at: datetime = Field(..., alias="grantedAt")
    revoked_at: Optional[datetime] = Field(None, alias="revokedAt")

    model_config = {"populate_by_name": True}


class ApplicationResponse(BaseModel):
    id: str
    status: ApplicationStatus
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: str
    phone: str
    email_verified: bool = Field(..., alias="emailVerified")
    phone_verified: bool = Field(..., alias="phoneVerified")
    documents: list[DocumentResponse]
    consents: list[ConsentResponse]
    assigned_to: Optional[str] = Field(None, alias="assignedTo")
    review_reason: Optional[str] = Field(None, alias="reviewReason")
    requires_manual_review: bool = Field(False, alias="requiresManualReview")
    account_number: Optional[str] = Field(None, alias="accountNumber")
    rejection_reason: Optional[str] = Field(None, alias="rejectionReason")
    created_at: datetime = Field(..., alias="createdAt")
    submitted_at: Optional[datetime] = Field(None, alias="submittedAt")
    approved_at: Optional[datetime] = Field(None, alias="approvedAt")
    rejected_at: Optional[datetime] = Field(None, alias="rejectedAt")
    version: int

    model_config = {"populate_by_name": True}

    @classmethod
    def from_domain(cls, application: OnboardingApplication) -> "ApplicationResponse":
        return cls(
            id=str(application.id),
            status=application.status,
            first_name=application.first_name,
            last_name=application.last_name,
            email=application.email,
            phone=application.phone,
            email_verified=application.email_verified,
            phone_verified=application.phone_verified,
            documents=[
                DocumentResponse(
                    id=str(d.id),
                    document_type=d.document_type,
                    status=d.status,
                    mime_type=d.mime_type,
                    file_size=d.file_size,
                    uploaded_at=d.uploaded_at,
                    verified_at=d.verified_at,
                )
                for d in application.documents
            ],
            consents=[
                ConsentResponse(
                    consent_type=c.consent_type,
                    version=c.version,
                    active=c.is_active,
                    granted_at=c.granted_at,
                    revoked_at=c.revoked_at,
                )
                for c in application.consents
            ],
            assigned_to=application.assigned_to,
            review_reason=application.review_reason,
            requires_manual_review=application.requires_manual_review,
            account_number=application.account_number,
            rejection_reason=application.rejection_reason,
            created_at=application.created_at,
            submitted_at=application.submitted_at,
            approved_at=application.approved_at,
            rejected_at=application.rejected_at,
            version=application.version,
        )


class MessageResponse(BaseModel):
    message: str
