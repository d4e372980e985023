from enum import Enum


class ApplicationStatus(str, Enum):
    INITIATED = "INITIATED"
    OTP_VERIFIED = "OTP_VERIFIED"
    DOCUMENTS_UPLOADED = "DOCUMENTS_UPLOADED"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    VERIFIED = "VERIFIED"
    REQUIRES_MORE_INFO = "REQUIRES_MORE_INFO"
    FLAGGED_SUSPICIOUS = "FLAGGED_SUSPICIOUS"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED)


class DocumentType(str, Enum):
    PASSPORT = "PASSPORT"
    PHOTO = "PHOTO"


class DocumentStatus(str, Enum):
    UPLOADED = "UPLOADED"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class ConsentType(str, Enum):
    DATA_PROCESSING = "DATA_PROCESSING"
    TERMS_AND_CONDITIONS = "TERMS_AND_CONDITIONS"
    MARKETING_COMMUNICATIONS = "MARKETING_COMMUNICATIONS"


class OtpChannel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"


class OtpStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    EXPIRED = "EXPIRED"
    MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class UserRole(str, Enum):
    """Token-bearing roles. Applicants authenticate by OTP; staff by password."""

    APPLICANT = "APPLICANT"
    COMPLIANCE_OFFICER = "COMPLIANCE_OFFICER"
    ADMIN = "ADMIN"


REQUIRED_DOCUMENTS: frozenset[DocumentType] = frozenset({DocumentType.PASSPORT, DocumentType.PHOTO})
REQUIRED_CONSENTS: frozenset[ConsentType] = frozenset(
    {ConsentType.DATA_PROCESSING, ConsentType.TERMS_AND_CONDITIONS}
)


class AuditActor(str, Enum):
    SYSTEM = "SYSTEM"
    APPLICANT = "APPLICANT"
    COMPLIANCE_OFFICER = "COMPLIANCE_OFFICER"
    ADMIN = "ADMIN"
    DATA_SUBJECT = "DATA_SUBJECT"
