"""
Compliance review and admin decisions.
Run from the project root: python -m pytest tests/test_review_service.py -v
"""
import unittest

from domain.enums import ApplicationStatus, AuditActor
from domain.errors import BusinessRuleViolationError, InvalidStateTransitionError, ResourceNotFoundError
from services.account_numbers import AccountNumberGenerator
from tests.factories import Harness, create_request


class TestComplianceReview(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.h = Harness()
        self.application = await self.h.submitted_application()

    async def test_list_by_status(self):
        submitted = await self.h.review.list_by_status(ApplicationStatus.SUBMITTED)
        self.assertEqual([a.id for a in submitted], [self.application.id])
        self.assertEqual(await self.h.review.list_by_status(ApplicationStatus.APPROVED), [])
        queried = [e for e in self.h.audit.entries if e.event_type == "APPLICATIONS_QUERIED_BY_STATUS"]
        self.assertEqual([e.details["status"] for e in queried], ["SUBMITTED", "APPROVED"])
        self.assertIsNone(queried[0].application_id)

    async def test_assign_is_exclusive(self):
        assigned = await self.h.review.assign_to_self(self.application.id, "officer-1")
        self.assertEqual(assigned.status, ApplicationStatus.UNDER_REVIEW)
        self.assertEqual((await self.h.review.assign_to_self(self.application.id, "officer-1")).assigned_to, "officer-1")
        with self.assertRaises(BusinessRuleViolationError):
            await self.h.review.assign_to_self(self.application.id, "officer-2")

    async def test_assign_requires_officer(self):
        with self.assertRaises(BusinessRuleViolationError):
            await self.h.review.assign_to_self(self.application.id, " ")

    async def test_request_info_and_flag_require_reason(self):
        await self.h.review.assign_to_self(self.application.id, "officer")
        with self.assertRaises(BusinessRuleViolationError):
            await self.h.review.request_more_info(self.application.id, "")
        with self.assertRaises(BusinessRuleViolationError):
            await self.h.review.flag_suspicious(self.application.id, None)
        flagged = await self.h.review.flag_suspicious(self.application.id, "Mismatched address")
        self.assertEqual(flagged.status, ApplicationStatus.FLAGGED_SUSPICIOUS)
        history = await self.h.audit_trail.history(self.application.id)
        self.assertEqual(
            [e.event_type for e in history][-2:], ["APPLICATION_ASSIGNED", "APPLICATION_FLAGGED_SUSPICIOUS"]
        )
        self.assertEqual(history[-1].actor, AuditActor.COMPLIANCE_OFFICER)

    async def test_more_info_loop(self):
        await self.h.review.assign_to_self(self.application.id, "officer")
        await self.h.review.request_more_info(self.application.id, "Need a clearer photo")
        application = await self.h.onboarding.provide_more_info(self.application.id, "Re-uploaded")
        self.assertEqual(application.status, ApplicationStatus.UNDER_REVIEW)
        self.assertEqual(self.h.events.types()[-1], "ADDITIONAL_INFO_PROVIDED")


class TestAdminDecisions(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.h = Harness()

    async def test_approve_issues_account_and_customer(self):
        application = await self.h.verified_by_officer()
        self.h.events.clear()

        result = await self.h.review.approve(application.id, "admin")

        self.assertEqual(result.application.status, ApplicationStatus.APPROVED)
        self.assertTrue(AccountNumberGenerator.validate(result.customer.account_number))
        self.assertEqual(result.application.account_number, result.customer.account_number)
        self.assertRegex(result.customer.customer_reference, r"^CUST-20240315-\d{3}$")
        self.assertIn(result.customer.id, self.h.customers.customers)
        self.assertEqual(self.h.events.types(), ["CUSTOMER_CREATED", "APPLICATION_APPROVED"])
        approved = self.h.audit.entries[-1]
        self.assertEqual(approved.event_type, "APPLICATION_APPROVED")
        self.assertEqual(approved.actor, AuditActor.ADMIN)
        self.assertEqual(approved.details["approvedBy"], "admin")
        self.assertNotEqual(approved.details["accountNumber"], result.customer.account_number)

        found = await self.h.review.find_by_account_number(result.customer.account_number)
        self.assertEqual(found.id, application.id)

    async def test_approve_requires_verified_or_flagged(self):
        application = await self.h.submitted_application()
        with self.assertRaises(InvalidStateTransitionError):
            await self.h.review.approve(application.id, "admin")
        self.assertEqual(self.h.customers.customers, {})

    async def test_reject_requires_reason(self):
        application = await self.h.verified_by_officer()
        with self.assertRaises(BusinessRuleViolationError):
            await self.h.review.reject(application.id, "", "admin")
        rejected = await self.h.review.reject(application.id, "Forged passport", "admin")
        self.assertEqual(rejected.status, ApplicationStatus.REJECTED)
        self.assertEqual(rejected.rejection_reason, "Forged passport")

    async def test_metrics_count_by_status(self):
        await self.h.submitted_application()
        await self.h.onboarding.create_application(
            create_request(email="z@example.com", phone="+31699999999", socialSecurityNumber="999999990")
        )
        metrics = await self.h.review.metrics()
        self.assertEqual(metrics["SUBMITTED"], 1)
        self.assertEqual(metrics["INITIATED"], 1)
        self.assertEqual(metrics["APPROVED"], 0)
        self.assertEqual(metrics["TOTAL"], 2)

    async def test_unknown_account_number(self):
        with self.assertRaises(ResourceNotFoundError):
            await self.h.review.find_by_account_number("NL38ABCB0417164300")


if __name__ == "__main__":
    unittest.main()
