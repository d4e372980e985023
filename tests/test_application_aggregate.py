"""
Lifecycle tests for the onboarding application aggregate.
Run from the project root: python -m pytest tests/test_application_aggregate.py -v
"""
import unittest
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from pydantic import ValidationError

from domain.application import ANONYMIZED, anonymized_email, anonymized_identifier
from domain.enums import ApplicationStatus, ConsentType, DocumentStatus, DocumentType, OtpChannel
from domain.errors import BusinessRuleViolationError, InvalidStateTransitionError
from domain.events import ApplicationApproved, ApplicationCreated, ApplicationRejected, OtpVerified
from tests.factories import (
    consent,
    document,
    fixed_clock,
    new_application,
    submitted,
    under_review,
    with_documents,
)


def _types(application):
    return [e.event_type for e in application.pending_events]


class TestCreation(unittest.TestCase):
    def setUp(self):
        self.clock = fixed_clock()

    def test_create_starts_initiated_with_created_event(self):
        application = new_application(self.clock)
        self.assertEqual(application.status, ApplicationStatus.INITIATED)
        self.assertEqual(application.version, 0)
        self.assertFalse(application.email_verified)
        self.assertEqual(len(application.pending_events), 1)
        self.assertIsInstance(application.pending_events[0], ApplicationCreated)
        self.assertEqual(application.created_at, self.clock.now())

    def test_create_rejects_missing_fields(self):
        with self.assertRaises(ValueError) as ctx:
            new_application(self.clock, email="", phone=None)
        self.assertIn("email", str(ctx.exception))
        self.assertIn("phone", str(ctx.exception))

    def test_equality_is_by_id(self):
        application = new_application(self.clock)
        other = new_application(self.clock, id=application.id, first_name="Someone")
        self.assertEqual(application, other)
        self.assertEqual(len({application, other}), 1)


class TestChannelVerification(unittest.TestCase):
    def setUp(self):
        self.clock = fixed_clock()
        self.application = new_application(self.clock)

    def test_first_channel_moves_to_otp_verified(self):
        self.application.verify_channel(OtpChannel.EMAIL)
        self.assertEqual(self.application.status, ApplicationStatus.OTP_VERIFIED)
        self.assertTrue(self.application.email_verified)
        self.assertIsInstance(self.application.pending_events[-1], OtpVerified)

    def test_second_channel_sets_flag_without_new_event(self):
        self.application.verify_channel(OtpChannel.EMAIL)
        self.application.clear_events()
        self.application.verify_channel(OtpChannel.SMS)
        self.assertTrue(self.application.phone_verified)
        self.assertEqual(self.application.status, ApplicationStatus.OTP_VERIFIED)
        self.assertEqual(self.application.pending_events, ())

    def test_channel_after_initiated_keeps_status(self):
        submitted(self.application, self.clock)
        self.application.verify_channel(OtpChannel.SMS)
        self.assertEqual(self.application.status, ApplicationStatus.SUBMITTED)
        self.assertTrue(self.application.phone_verified)


class TestDocumentsAndConsents(unittest.TestCase):
    def setUp(self):
        self.clock = fixed_clock()
        self.application = new_application(self.clock)

    def test_upload_requires_verified_channel(self):
        with self.assertRaises(InvalidStateTransitionError):
            self.application.add_document(document(self.clock, DocumentType.PASSPORT))
        self.assertEqual(self.application.documents, ())

    def test_one_document_keeps_otp_verified(self):
        self.application.verify_channel(OtpChannel.EMAIL)
        self.application.add_document(document(self.clock, DocumentType.PASSPORT))
        self.assertEqual(self.application.status, ApplicationStatus.OTP_VERIFIED)
        self.assertFalse(self.application.has_all_required_documents())

    def test_both_documents_move_to_documents_uploaded(self):
        with_documents(self.application, self.clock)
        self.assertEqual(self.application.status, ApplicationStatus.DOCUMENTS_UPLOADED)
        self.assertEqual(len(self.application.documents), 2)

    def test_reupload_replaces_same_type(self):
        with_documents(self.application, self.clock)
        replacement = document(self.clock, DocumentType.PASSPORT)
        self.application.add_document(replacement)
        self.assertEqual(len(self.application.documents), 2)
        self.assertEqual(self.application.document_of(DocumentType.PASSPORT).id, replacement.id)

    def test_revoke_keeps_history(self):
        self.application.add_consent(consent(self.clock, ConsentType.MARKETING_COMMUNICATIONS))
        self.clock.advance(minutes=5)
        self.application.revoke_consent(ConsentType.MARKETING_COMMUNICATIONS)
        self.assertFalse(self.application.has_active_consent(ConsentType.MARKETING_COMMUNICATIONS))
        self.assertEqual(len(self.application.consents), 1)
        self.assertEqual(self.application.consents[0].revoked_at, self.clock.now())
        self.assertEqual(_types(self.application)[-1], "CONSENT_REVOKED")

    def test_revoke_without_active_consent_fails(self):
        with self.assertRaises(BusinessRuleViolationError):
            self.application.revoke_consent(ConsentType.DATA_PROCESSING)


class TestSubmission(unittest.TestCase):
    def setUp(self):
        self.clock = fixed_clock()
        self.application = new_application(self.clock)

    def test_submit_from_initiated_fails(self):
        with self.assertRaises(InvalidStateTransitionError):
            self.application.submit()
        self.assertEqual(self.application.status, ApplicationStatus.INITIATED)

    def test_submit_without_consents_fails(self):
        with_documents(self.application, self.clock)
        self.application.add_consent(consent(self.clock, ConsentType.DATA_PROCESSING))
        with self.assertRaises(InvalidStateTransitionError) as ctx:
            self.application.submit()
        self.assertIn("consents", str(ctx.exception))
        self.assertEqual(self.application.status, ApplicationStatus.DOCUMENTS_UPLOADED)

    def test_submit_with_revoked_consent_fails(self):
        with_documents(self.application, self.clock)
        self.application.add_consent(consent(self.clock, ConsentType.DATA_PROCESSING))
        self.application.add_consent(consent(self.clock, ConsentType.TERMS_AND_CONDITIONS))
        self.application.revoke_consent(ConsentType.TERMS_AND_CONDITIONS)
        with self.assertRaises(InvalidStateTransitionError):
            self.application.submit()

    def test_submit_stamps_time(self):
        submitted(self.application, self.clock)
        self.assertEqual(self.application.status, ApplicationStatus.SUBMITTED)
        self.assertEqual(self.application.submitted_at, self.clock.now())
        self.assertEqual(_types(self.application)[-1], "APPLICATION_SUBMITTED")


class TestReview(unittest.TestCase):
    def setUp(self):
        self.clock = fixed_clock()
        self.application = new_application(self.clock)

    def test_assign_moves_submitted_to_under_review(self):
        under_review(self.application, self.clock, "officer-1")
        self.assertEqual(self.application.status, ApplicationStatus.UNDER_REVIEW)
        self.assertEqual(self.application.assigned_to, "officer-1")

    def test_reassign_under_review_keeps_status(self):
        under_review(self.application, self.clock, "officer-1")
        self.application.assign_to("officer-2")
        self.assertEqual(self.application.status, ApplicationStatus.UNDER_REVIEW)
        self.assertEqual(self.application.assigned_to, "officer-2")

    def test_verify_verifies_every_document(self):
        under_review(self.application, self.clock)
        self.application.verify("officer")
        self.assertEqual(self.application.status, ApplicationStatus.VERIFIED)
        self.assertTrue(all(d.status == DocumentStatus.VERIFIED for d in self.application.documents))
        self.assertTrue(all(d.verified_by == "officer" for d in self.application.documents))

    def test_document_views_are_immutable(self):
        with_documents(self.application, self.clock)
        view = self.application.documents[0]
        with self.assertRaises(ValidationError):
            view.status = DocumentStatus.VERIFIED
        copy = view.verified("outsider", self.clock.now())
        self.assertEqual(copy.status, DocumentStatus.VERIFIED)
        self.assertEqual(self.application.documents[0].status, DocumentStatus.UPLOADED)
        self.assertIsNone(self.application.documents[0].verified_by)

    def test_rejected_copy_requires_reason(self):
        view = document(self.clock, DocumentType.PASSPORT)
        with self.assertRaises(ValueError):
            view.rejected("", self.clock.now())
        self.assertEqual(view.rejected("expired", self.clock.now()).rejection_reason, "expired")
        self.assertEqual(view.status, DocumentStatus.UPLOADED)

    def test_more_info_round_trip(self):
        under_review(self.application, self.clock)
        self.application.request_more_info("Passport photo is blurry")
        self.assertEqual(self.application.status, ApplicationStatus.REQUIRES_MORE_INFO)
        self.assertEqual(self.application.review_reason, "Passport photo is blurry")
        self.application.provide_more_info("Uploaded a sharper scan")
        self.assertEqual(self.application.status, ApplicationStatus.UNDER_REVIEW)
        self.assertIsNone(self.application.review_reason)

    def test_provide_info_requires_request(self):
        under_review(self.application, self.clock)
        with self.assertRaises(InvalidStateTransitionError):
            self.application.provide_more_info("unsolicited")

    def test_flag_sets_manual_review(self):
        under_review(self.application, self.clock)
        self.application.flag_suspicious("Address mismatch")
        self.assertEqual(self.application.status, ApplicationStatus.FLAGGED_SUSPICIOUS)
        self.assertTrue(self.application.requires_manual_review)

    def test_verify_outside_review_fails(self):
        submitted(self.application, self.clock)
        with self.assertRaises(InvalidStateTransitionError):
            self.application.verify("officer")


class TestDecision(unittest.TestCase):
    def setUp(self):
        self.clock = fixed_clock()
        self.application = new_application(self.clock)

    def test_approve_from_verified(self):
        under_review(self.application, self.clock)
        self.application.verify("officer")
        customer_id = uuid4()
        self.application.approve(customer_id, "NL38ABCB0417164300", "admin")
        self.assertEqual(self.application.status, ApplicationStatus.APPROVED)
        self.assertEqual(self.application.customer_id, customer_id)
        self.assertEqual(self.application.account_number, "NL38ABCB0417164300")
        self.assertEqual(self.application.approved_at, self.clock.now())
        self.assertEqual(self.application.data_retention_until, datetime(2029, 3, 15, 9, 0, tzinfo=timezone.utc))
        self.assertIsInstance(self.application.pending_events[-1], ApplicationApproved)

    def test_approve_from_flagged(self):
        under_review(self.application, self.clock)
        self.application.flag_suspicious("check")
        self.application.approve(uuid4(), "NL38ABCB0417164300", "admin")
        self.assertEqual(self.application.status, ApplicationStatus.APPROVED)

    def test_approve_from_submitted_fails(self):
        submitted(self.application, self.clock)
        with self.assertRaises(InvalidStateTransitionError):
            self.application.approve(uuid4(), "NL38ABCB0417164300", "admin")
        self.assertIsNone(self.application.account_number)

    def test_reject_sets_ninety_day_retention(self):
        under_review(self.application, self.clock)
        self.application.reject("Document forged")
        self.assertEqual(self.application.status, ApplicationStatus.REJECTED)
        self.assertEqual(self.application.rejection_reason, "Document forged")
        self.assertEqual(self.application.data_retention_until, self.clock.now() + timedelta(days=90))
        self.assertIsInstance(self.application.pending_events[-1], ApplicationRejected)

    def test_reject_without_reason_fails_and_keeps_status(self):
        under_review(self.application, self.clock)
        with self.assertRaises(BusinessRuleViolationError):
            self.application.reject(None)
        with self.assertRaises(BusinessRuleViolationError):
            self.application.reject("   ")
        self.assertEqual(self.application.status, ApplicationStatus.UNDER_REVIEW)

    def test_reject_wrong_status_checked_before_reason(self):
        with self.assertRaises(InvalidStateTransitionError):
            self.application.reject(None)

    def test_terminal_states_accept_nothing(self):
        under_review(self.application, self.clock)
        self.application.reject("no")
        self.assertTrue(self.application.status.is_terminal)
        for action in (
            lambda: self.application.assign_to("x"),
            lambda: self.application.verify("x"),
            lambda: self.application.approve(uuid4(), "NL38ABCB0417164300", "x"),
            lambda: self.application.reject("again"),
            self.application.submit,
        ):
            with self.assertRaises(InvalidStateTransitionError):
                action()


class TestGdpr(unittest.TestCase):
    def setUp(self):
        self.clock = fixed_clock()
        self.application = new_application(self.clock)

    def test_mark_for_deletion_only_when_rejected(self):
        with self.assertRaises(InvalidStateTransitionError):
            self.application.mark_for_deletion()
        under_review(self.application, self.clock)
        self.application.reject("no")
        self.application.mark_for_deletion()
        self.assertTrue(self.application.marked_for_deletion)
        self.assertEqual(_types(self.application)[-1], "DATA_DELETION_REQUESTED")

    def test_retention_elapses_after_ninety_days(self):
        under_review(self.application, self.clock)
        self.application.reject("no")
        self.assertFalse(self.application.retention_elapsed())
        self.clock.advance(days=90)
        self.assertTrue(self.application.retention_elapsed())

    def test_anonymize_overwrites_personal_data(self):
        self.application.anonymize()
        self.assertEqual(self.application.first_name, ANONYMIZED)
        self.assertEqual(self.application.email, anonymized_email(self.application.id))
        self.assertEqual(self.application.social_security_number, anonymized_identifier(self.application.id))
        self.assertTrue(self.application.phone.startswith(ANONYMIZED))

    def test_anonymized_identifiers_differ_between_applications(self):
        other = new_application(self.clock, email="other@example.com", phone="+31600000002")
        self.application.anonymize()
        other.anonymize()
        self.assertNotEqual(self.application.email, other.email)
        self.assertNotEqual(self.application.phone, other.phone)
        self.assertNotEqual(self.application.social_security_number, other.social_security_number)
        self.assertEqual(self.application.residential_address.city, ANONYMIZED)


if __name__ == "__main__":
    unittest.main()
