"""
Applicant use cases end to end over in-memory adapters.
Run from the project root: python -m pytest tests/test_onboarding_service.py -v
"""
import unittest
from uuid import uuid4

from domain.enums import ApplicationStatus, AuditActor, ConsentType, DocumentType, OtpChannel, OtpStatus
from domain.errors import (
    BusinessRuleViolationError,
    ConcurrencyConflictError,
    DuplicateIdentityError,
    InvalidOtpError,
    InvalidStateTransitionError,
    OtpExpiredError,
    OtpMaxAttemptsError,
    ResourceNotFoundError,
)
from services.onboarding import MAX_DOCUMENT_BYTES
from tests.factories import Harness, create_request, new_application


def _wrong(code):
    return "000000" if code != "000000" else "111111"


class TestCreateApplication(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.h = Harness()

    async def test_create_persists_and_publishes(self):
        application = await self.h.onboarding.create_application(create_request(email="Anna@Example.com"))
        self.assertEqual(application.status, ApplicationStatus.INITIATED)
        self.assertEqual(application.version, 1)
        self.assertEqual(application.email, "anna@example.com")
        self.assertEqual(application.pending_events, ())
        self.assertEqual(self.h.events.types(), ["APPLICATION_CREATED"])
        stored = await self.h.applications.get(application.id)
        self.assertEqual(stored.first_name, "Anna")
        self.assertEqual(self.h.audit.types(), ["APPLICATION_CREATED"])
        entry = self.h.audit.entries[0]
        self.assertEqual(entry.actor, AuditActor.SYSTEM)
        self.assertEqual(entry.application_id, application.id)
        self.assertNotIn("anna@example.com", str(entry.details))

    async def test_duplicate_identity_is_refused(self):
        await self.h.onboarding.create_application(create_request())
        with self.assertRaises(DuplicateIdentityError) as ctx:
            await self.h.onboarding.create_application(create_request(email="other@example.com"))
        self.assertEqual(ctx.exception.duplicate_type, "SSN")

    async def test_repository_refuses_identity_collision_that_skipped_the_check(self):
        await self.h.onboarding.create_application(create_request())
        racer = new_application(self.h.clock, social_security_number="999999990", phone="+31600000009")
        with self.assertRaises(DuplicateIdentityError) as ctx:
            await self.h.applications.save(racer)
        self.assertEqual(ctx.exception.duplicate_type, "EMAIL")
        self.assertIsNone(await self.h.applications.get(racer.id))

    async def test_underage_applicant_is_refused(self):
        with self.assertRaises(BusinessRuleViolationError):
            await self.h.onboarding.create_application(create_request(dateOfBirth="2010-01-01"))
        self.assertEqual(self.h.events.events, [])

    async def test_unknown_application(self):
        with self.assertRaises(ResourceNotFoundError):
            await self.h.onboarding.get_application(uuid4())


class TestOtpFlow(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.h = Harness()
        self.application = await self.h.onboarding.create_application(create_request())
        self.h.events.clear()

    async def _send(self, channel=OtpChannel.EMAIL):
        return await self.h.onboarding.send_otp(self.application.id, channel)

    async def test_send_stores_only_the_hash_and_masks_destination(self):
        dispatch = await self._send()
        code = self.h.notifier.sent["anna@example.com"]
        record = self.h.otps.records[-1]
        self.assertNotEqual(record.otp_hash, code)
        self.assertEqual(record.status, OtpStatus.PENDING)
        self.assertEqual(dispatch.expires_in_seconds, 600)
        self.assertNotIn("anna@example.com", dispatch.destination)
        self.assertEqual(self.h.events.types(), ["OTP_SENT"])
        self.assertNotIn("anna@example.com", str(self.h.events.events[0].to_message()))

    async def test_correct_code_verifies_channel_and_returns_token(self):
        await self._send()
        token = await self.h.onboarding.verify_otp(
            self.application.id, OtpChannel.EMAIL, self.h.notifier.sent["anna@example.com"]
        )
        claims = self.h.tokens.validate(token)
        self.assertEqual(self.h.tokens.extract_application_id(claims), self.application.id)
        stored = await self.h.applications.get(self.application.id)
        self.assertEqual(stored.status, ApplicationStatus.OTP_VERIFIED)
        self.assertTrue(stored.email_verified)
        self.assertEqual(self.h.otps.records[-1].status, OtpStatus.VERIFIED)
        self.assertEqual(self.h.events.types()[-1], "OTP_VERIFIED")
        self.assertEqual(self.h.audit.types()[-2:], ["OTP_SENT", "OTP_VERIFIED"])

    async def test_wrong_code_counts_attempt(self):
        await self._send()
        wrong = _wrong(self.h.notifier.sent["anna@example.com"])
        with self.assertRaises(InvalidOtpError) as ctx:
            await self.h.onboarding.verify_otp(self.application.id, OtpChannel.EMAIL, wrong)
        self.assertIn("2 attempt(s) remaining", str(ctx.exception))
        self.assertTrue(ctx.exception.commit_on_failure)
        self.assertEqual(self.h.otps.records[-1].attempts, 1)
        failed = self.h.audit.entries[-1]
        self.assertEqual(failed.event_type, "OTP_VERIFICATION_FAILED")
        self.assertEqual(failed.actor, AuditActor.APPLICANT)
        self.assertEqual(failed.details["reason"], "Invalid OTP")

    async def test_stale_otp_copies_do_not_lose_failed_attempts(self):
        await self._send()
        first = await self.h.otps.latest_for(self.application.id, OtpChannel.EMAIL)
        second = await self.h.otps.latest_for(self.application.id, OtpChannel.EMAIL)
        self.assertEqual(await self.h.otps.record_failed_attempt(first.id), 1)
        self.assertEqual(await self.h.otps.record_failed_attempt(second.id), 2)
        # a later status write from a stale copy keeps the stored counter
        second.mark_expired()
        await self.h.otps.update(second)
        self.assertEqual(self.h.otps.records[-1].attempts, 2)
        self.assertEqual(self.h.otps.records[-1].status, OtpStatus.EXPIRED)
        self.assertEqual(self.h.audit.entries[-1].details["reason"], "OTP expired")

    async def test_attempts_exhausted(self):
        await self._send()
        code = self.h.notifier.sent["anna@example.com"]
        wrong = _wrong(code)
        for _ in range(3):
            with self.assertRaises(InvalidOtpError):
                await self.h.onboarding.verify_otp(self.application.id, OtpChannel.EMAIL, wrong)
        with self.assertRaises(OtpMaxAttemptsError):
            await self.h.onboarding.verify_otp(self.application.id, OtpChannel.EMAIL, code)
        self.assertEqual(self.h.otps.records[-1].status, OtpStatus.MAX_ATTEMPTS_EXCEEDED)

    async def test_expired_code(self):
        await self._send()
        self.h.clock.advance(minutes=11)
        with self.assertRaises(OtpExpiredError):
            await self.h.onboarding.verify_otp(
                self.application.id, OtpChannel.EMAIL, self.h.notifier.sent["anna@example.com"]
            )
        self.assertEqual(self.h.otps.records[-1].status, OtpStatus.EXPIRED)

    async def test_verify_without_send(self):
        with self.assertRaises(BusinessRuleViolationError):
            await self.h.onboarding.verify_otp(self.application.id, OtpChannel.SMS, "123456")

    async def test_code_cannot_be_reused(self):
        await self._send()
        code = self.h.notifier.sent["anna@example.com"]
        await self.h.onboarding.verify_otp(self.application.id, OtpChannel.EMAIL, code)
        with self.assertRaises(BusinessRuleViolationError):
            await self.h.onboarding.verify_otp(self.application.id, OtpChannel.EMAIL, code)

    async def test_only_newest_code_is_checked(self):
        await self._send()
        first = self.h.notifier.sent["anna@example.com"]
        await self._send()
        second = self.h.notifier.sent["anna@example.com"]
        self.assertEqual(len(self.h.otps.records), 2)
        if first != second:
            with self.assertRaises(InvalidOtpError):
                await self.h.onboarding.verify_otp(self.application.id, OtpChannel.EMAIL, first)
        await self.h.onboarding.verify_otp(self.application.id, OtpChannel.EMAIL, second)

    async def test_second_channel_does_not_emit_again(self):
        await self._send()
        await self.h.onboarding.verify_otp(
            self.application.id, OtpChannel.EMAIL, self.h.notifier.sent["anna@example.com"]
        )
        await self._send(OtpChannel.SMS)
        await self.h.onboarding.verify_otp(
            self.application.id, OtpChannel.SMS, self.h.notifier.sent["+31612345678"]
        )
        self.assertEqual(self.h.events.types().count("OTP_VERIFIED"), 1)
        stored = await self.h.applications.get(self.application.id)
        self.assertTrue(stored.phone_verified)


class TestDocumentsConsentsAndSubmit(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.h = Harness()
        self.application, _ = await self.h.verified_application()

    async def _upload(self, document_type, content=b"scan"):
        return await self.h.onboarding.upload_document(
            self.application.id, document_type, "scan.png", content, "image/png"
        )

    async def test_upload_before_otp_is_refused_without_storing(self):
        other = await self.h.onboarding.create_application(
            create_request(email="b@example.com", phone="+31687654321", socialSecurityNumber="987654321")
        )
        with self.assertRaises(InvalidStateTransitionError):
            await self.h.onboarding.upload_document(other.id, DocumentType.PASSPORT, "p.png", b"x", "image/png")
        self.assertEqual(self.h.documents.objects, {})

    async def test_upload_validation(self):
        with self.assertRaises(BusinessRuleViolationError):
            await self._upload(DocumentType.PASSPORT, content=b"")
        with self.assertRaises(BusinessRuleViolationError):
            await self._upload(DocumentType.PASSPORT, content=b"x" * (MAX_DOCUMENT_BYTES + 1))
        with self.assertRaises(BusinessRuleViolationError):
            await self.h.onboarding.upload_document(
                self.application.id, DocumentType.PASSPORT, "  ", b"x", "image/png"
            )

    async def test_reupload_replaces_blob(self):
        first = await self._upload(DocumentType.PASSPORT, b"old")
        second = await self._upload(DocumentType.PASSPORT, b"new")
        stored = await self.h.applications.get(self.application.id)
        self.assertEqual(len(stored.documents), 1)
        self.assertEqual(stored.document_of(DocumentType.PASSPORT).id, second.id)
        self.assertNotIn(first.storage_path, self.h.documents.objects)
        self.assertEqual(self.h.documents.objects[second.storage_path], b"new")

    async def test_submit_requires_consents(self):
        await self._upload(DocumentType.PASSPORT)
        await self._upload(DocumentType.PHOTO)
        await self.h.onboarding.grant_consent(self.application.id, ConsentType.DATA_PROCESSING, "ok", "1.0")
        with self.assertRaises(InvalidStateTransitionError):
            await self.h.onboarding.submit(self.application.id)
        stored = await self.h.applications.get(self.application.id)
        self.assertEqual(stored.status, ApplicationStatus.DOCUMENTS_UPLOADED)

    async def test_full_submission(self):
        submitted = await self.h.submitted_application(
            email="c@example.com", phone="+31611111111", socialSecurityNumber="111111110"
        )
        self.assertEqual(submitted.status, ApplicationStatus.SUBMITTED)
        self.assertEqual(self.h.events.types()[-1], "APPLICATION_SUBMITTED")

    async def test_revoke_consent(self):
        await self.h.onboarding.grant_consent(self.application.id, ConsentType.MARKETING_COMMUNICATIONS, "ok", "1.0")
        application = await self.h.onboarding.revoke_consent(self.application.id, ConsentType.MARKETING_COMMUNICATIONS)
        self.assertFalse(application.has_active_consent(ConsentType.MARKETING_COMMUNICATIONS))
        with self.assertRaises(BusinessRuleViolationError):
            await self.h.onboarding.revoke_consent(self.application.id, ConsentType.MARKETING_COMMUNICATIONS)

    async def test_stale_copy_conflicts(self):
        stale = await self.h.applications.get(self.application.id)
        await self._upload(DocumentType.PASSPORT)
        stale.add_document(
            (await self.h.applications.get(self.application.id)).document_of(DocumentType.PASSPORT)
        )
        with self.assertRaises(ConcurrencyConflictError):
            await self.h.applications.save(stale)


if __name__ == "__main__":
    unittest.main()
