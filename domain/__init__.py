from domain.application import Address, Consent, Document, OnboardingApplication
from domain.audit import AuditEvent
from domain.customer import Customer, RefreshToken, StaffSession, StaffUser
from domain.otp import OtpVerification

__all__ = [
    "Address",
    "AuditEvent",
    "Consent",
    "Customer",
    "Document",
    "OnboardingApplication",
    "OtpVerification",
    "RefreshToken",
    "StaffSession",
    "StaffUser",
]
