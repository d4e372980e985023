"""
Builders shared by the test modules: a valid applicant, a fixed clock, and aggregates
pushed to a given point in the lifecycle.
"""
import random
from datetime import date, datetime, timezone
from uuid import uuid4

from domain.application import Address, Consent, Document, OnboardingApplication
from domain.enums import ConsentType, DocumentType, Gender, OtpChannel
from repositories.memory import (
    InMemoryApplicationRepository,
    InMemoryAuditRepository,
    InMemoryCustomerRepository,
    InMemoryOtpRepository,
    InMemoryRefreshTokenRepository,
    InMemoryStaffSessionRepository,
    InMemoryStaffUserRepository,
)
from schemas.application import AddressSchema, ApplicationCreate
from services.account_numbers import AccountNumberGenerator
from services.audit import AuditTrail
from services.auth import AuthService
from services.document_store import InMemoryDocumentStore
from services.event_sink import InMemoryEventSink
from services.gdpr import GdprService
from services.hashing import BcryptHasher
from services.notifications import RecordingOtpNotifier
from services.onboarding import OnboardingService
from services.otp import OtpService
from services.rate_limiter import RateLimiter
from services.review import ReviewService
from services.tokens import TokenService
from utils.clock import FixedClock

START = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


def fixed_clock():
    return FixedClock(START)


def address():
    return Address(street="Damrak", house_number="1", postal_code="1012LG", city="Amsterdam", country="NL")


def new_application(clock, **overrides):
    fields = {
        "id": uuid4(),
        "first_name": "Anna",
        "last_name": "de Vries",
        "gender": Gender.FEMALE,
        "date_of_birth": date(1990, 5, 17),
        "phone": "+31612345678",
        "email": "anna@example.com",
        "nationality": "NL",
        "residential_address": address(),
        "social_security_number": "123456782",
    }
    fields.update(overrides)
    return OnboardingApplication.create(clock=clock, **fields)


def create_request(**overrides):
    fields = {
        "firstName": "Anna",
        "lastName": "de Vries",
        "gender": "FEMALE",
        "dateOfBirth": "1990-05-17",
        "phone": "+31612345678",
        "email": "anna@example.com",
        "nationality": "NL",
        "residentialAddress": AddressSchema(
            street="Damrak", houseNumber="1", postalCode="1012LG", city="Amsterdam", country="NL"
        ),
        "socialSecurityNumber": "123456782",
    }
    fields.update(overrides)
    return ApplicationCreate(**fields)


def document(clock, document_type):
    return Document(
        id=uuid4(),
        document_type=document_type,
        storage_path=f"docs/{document_type.value.lower()}.pdf",
        mime_type="application/pdf",
        file_size=1024,
        uploaded_at=clock.now(),
    )


def consent(clock, consent_type):
    return Consent(
        id=uuid4(),
        consent_type=consent_type,
        granted=True,
        granted_at=clock.now(),
        consent_text="I agree",
        version="1.0",
        ip_address="10.0.0.1",
    )


def with_documents(application, clock):
    application.verify_channel(OtpChannel.EMAIL)
    application.add_document(document(clock, DocumentType.PASSPORT))
    application.add_document(document(clock, DocumentType.PHOTO))
    return application


def submitted(application, clock):
    with_documents(application, clock)
    application.add_consent(consent(clock, ConsentType.DATA_PROCESSING))
    application.add_consent(consent(clock, ConsentType.TERMS_AND_CONDITIONS))
    application.submit()
    return application


def under_review(application, clock, reviewer="officer"):
    submitted(application, clock)
    application.assign_to(reviewer)
    return application


class Harness:
    """In-memory wiring of every service, sharing one clock, sink and set of repositories."""

    def __init__(self, clock=None, max_otp_attempts=3):
        self.clock = clock or fixed_clock()
        self.hasher = BcryptHasher(rounds=4)
        self.applications = InMemoryApplicationRepository(self.clock)
        self.otps = InMemoryOtpRepository()
        self.customers = InMemoryCustomerRepository()
        self.users = InMemoryStaffUserRepository()
        self.refresh_tokens = InMemoryRefreshTokenRepository(self.clock)
        self.sessions = InMemoryStaffSessionRepository()
        self.audit = InMemoryAuditRepository()
        self.audit_trail = AuditTrail(self.audit, self.clock)
        self.events = InMemoryEventSink()
        self.documents = InMemoryDocumentStore()
        self.notifier = RecordingOtpNotifier()
        self.tokens = TokenService("test-secret-" + "x" * 40, clock=self.clock)
        self.rate_limiter = RateLimiter(self.clock)

        self.onboarding = OnboardingService(
            self.applications,
            self.otps,
            OtpService(self.hasher, clock=self.clock),
            self.tokens,
            self.events,
            self.audit_trail,
            self.documents,
            self.notifier,
            clock=self.clock,
            max_otp_attempts=max_otp_attempts,
        )
        self.review = ReviewService(
            self.applications,
            self.customers,
            self.events,
            self.audit_trail,
            account_numbers=AccountNumberGenerator("NL", "ABCB", rng=random.Random(11)),
            clock=self.clock,
            rng=random.Random(5),
        )
        self.gdpr = GdprService(self.applications, self.events, self.audit_trail, self.documents, clock=self.clock)
        self.auth = AuthService(
            self.users, self.refresh_tokens, self.sessions, self.tokens, self.hasher, clock=self.clock
        )

    async def verified_application(self, **overrides):
        """Created and OTP-verified by email; returns (application, applicant token)."""
        application = await self.onboarding.create_application(create_request(**overrides))
        await self.onboarding.send_otp(application.id, OtpChannel.EMAIL)
        token = await self.onboarding.verify_otp(
            application.id, OtpChannel.EMAIL, self.notifier.sent[application.email]
        )
        return await self.applications.get(application.id), token

    async def submitted_application(self, **overrides):
        application, _ = await self.verified_application(**overrides)
        for document_type in (DocumentType.PASSPORT, DocumentType.PHOTO):
            await self.onboarding.upload_document(
                application.id, document_type, f"{document_type.value.lower()}.jpg", b"\xff\xd8data", "image/jpeg"
            )
        for consent_type in (ConsentType.DATA_PROCESSING, ConsentType.TERMS_AND_CONDITIONS):
            await self.onboarding.grant_consent(application.id, consent_type, "I agree", "1.0", "10.0.0.1")
        return await self.onboarding.submit(application.id)

    async def verified_by_officer(self, **overrides):
        application = await self.submitted_application(**overrides)
        await self.review.assign_to_self(application.id, "officer")
        return await self.review.verify(application.id, "officer")
