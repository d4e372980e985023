from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from domain.application import OnboardingApplication
from domain.enums import ApplicationStatus
from utils.masking import mask_national_id


class ReasonRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class ApprovalResponse(BaseModel):
    application_id: str = Field(..., alias="applicationId")
    customer_id: str = Field(..., alias="customerId")
    customer_reference: str = Field(..., alias="customerReference")
    account_number: str = Field(..., alias="accountNumber")
    status: ApplicationStatus

    model_config = {"populate_by_name": True}


class ApplicationSummary(BaseModel):
    """Reviewer view; the national id is masked."""

    id: str
    status: ApplicationStatus
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: str
    nationality: str
    social_security_number: str = Field(..., alias="socialSecurityNumber")
    document_count: int = Field(..., alias="documentCount")
    assigned_to: Optional[str] = Field(None, alias="assignedTo")
    review_reason: Optional[str] = Field(None, alias="reviewReason")
    requires_manual_review: bool = Field(False, alias="requiresManualReview")
    submitted_at: Optional[datetime] = Field(None, alias="submittedAt")
    version: int

    model_config = {"populate_by_name": True}

    @classmethod
    def from_domain(cls, application: OnboardingApplication) -> "ApplicationSummary":
        return cls(
            id=str(application.id),
            status=application.status,
            first_name=application.first_name,
            last_name=application.last_name,
            email=application.email,
            nationality=application.nationality,
            social_security_number=mask_national_id(application.social_security_number),
            document_count=len(application.documents),
            assigned_to=application.assigned_to,
            review_reason=application.review_reason,
            requires_manual_review=application.requires_manual_review,
            submitted_at=application.submitted_at,
            version=application.version,
        )


class RateLimitResetResponse(BaseModel):
    resource: str
    cleared: int


class RateLimitInfoResponse(BaseModel):
    key: str  # masked
    resource: str
    limit: int
    current: int
    remaining: int
    reset_at: int = Field(..., alias="resetAt")

    model_config = {"populate_by_name": True}


class RateLimitRuleResponse(BaseModel):
    resource: str
    method: str
    path: str
    limit: int
    window_seconds: int = Field(..., alias="windowSeconds")
    key_source: str = Field(..., alias="keySource")

    model_config = {"populate_by_name": True}
