"""
Staff-side use cases: compliance review (assign, verify, request info, flag) and admin decisions (approve, reject).
"""
from __future__ import annotations

import logging
import random
import secrets
import uuid
from dataclasses import dataclass
from uuid import UUID

from domain.application import OnboardingApplication
from domain.customer import Customer
from domain.enums import ApplicationStatus, AuditActor
from domain.errors import (
    BusinessRuleViolationError,
    GenerationExhaustedError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from domain.events import CustomerCreated
from repositories.ports import ApplicationRepository, CustomerRepository
from services import audit as audit_types
from services.account_numbers import MAX_RETRIES, AccountNumberGenerator
from services.audit import AuditTrail
from services.event_sink import EventSink, publish_all
from services.onboarding import load_application, save_and_publish
from utils.clock import Clock
from utils.masking import mask_account_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalResult:
    application: OnboardingApplication
    customer: Customer


def _require_text(value: str | None, message: str) -> str:
    if value is None or not value.strip():
        raise BusinessRuleViolationError(message)
    return value.strip()


class ReviewService:
    def __init__(
        self,
        applications: ApplicationRepository,
        customers: CustomerRepository,
        events: EventSink,
        audit: AuditTrail,
        account_numbers: AccountNumberGenerator | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ):
        self._applications = applications
        self._customers = customers
        self._events = events
        self._audit = audit
        self._account_numbers = account_numbers or AccountNumberGenerator()
        self._clock = clock or Clock()
        self._rng = rng or secrets.SystemRandom()

    # -- compliance officer -----------------------------------------------

    async def list_by_status(
        self, status: ApplicationStatus, requested_by: str = "system"
    ) -> list[OnboardingApplication]:
        applications = await self._applications.list_by_status(status)
        await self._audit.record(
            audit_types.APPLICATIONS_QUERIED_BY_STATUS,
            AuditActor.COMPLIANCE_OFFICER,
            details={"status": status.value, "count": len(applications), "performedBy": requested_by},
        )
        logger.info("Retrieved %d applications with status %s", len(applications), status.value)
        return applications

    async def assign_to_self(self, application_id: UUID, officer: str) -> OnboardingApplication:
        officer = _require_text(officer, "Officer ID is required")
        application = await load_application(self._applications, application_id)
        if application.assigned_to and application.assigned_to != officer:
            raise BusinessRuleViolationError(f"Application is already assigned to: {application.assigned_to}")
        application.assign_to(officer)
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.APPLICATION_ASSIGNED, AuditActor.COMPLIANCE_OFFICER, application_id, {"assignedTo": officer}
        )
        logger.info("Assigned application %s to %s", application_id, officer)
        return application

    async def verify(self, application_id: UUID, officer: str) -> OnboardingApplication:
        application = await load_application(self._applications, application_id)
        application.verify(officer)
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.APPLICATION_VERIFIED, AuditActor.COMPLIANCE_OFFICER, application_id, {"verifiedBy": officer}
        )
        logger.info("Application %s verified by %s", application_id, officer)
        return application

    async def request_more_info(self, application_id: UUID, reason: str) -> OnboardingApplication:
        reason = _require_text(reason, "Reason is required when requesting additional information")
        application = await load_application(self._applications, application_id)
        application.request_more_info(reason)
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.ADDITIONAL_INFO_REQUESTED, AuditActor.COMPLIANCE_OFFICER, application_id, {"reason": reason}
        )
        logger.info("Requested additional info for application %s", application_id)
        return application

    async def flag_suspicious(self, application_id: UUID, reason: str) -> OnboardingApplication:
        reason = _require_text(reason, "Reason is required when flagging application")
        application = await load_application(self._applications, application_id)
        application.flag_suspicious(reason)
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.APPLICATION_FLAGGED_SUSPICIOUS,
            AuditActor.COMPLIANCE_OFFICER,
            application_id,
            {"reason": reason},
        )
        logger.warning("Application %s flagged as suspicious", application_id)
        return application

    # -- admin -------------------------------------------------------------

    async def _customer_reference(self) -> str:
        date_part = self._clock.now().strftime("%Y%m%d")
        for _ in range(MAX_RETRIES):
            reference = f"CUST-{date_part}-{self._rng.randint(100, 999):03d}"
            if not await self._customers.exists_by_reference(reference):
                return reference
        logger.error("Failed to generate a unique customer reference for %s", date_part)
        raise GenerationExhaustedError(f"Failed to generate unique customer reference after {MAX_RETRIES} attempts")

    async def approve(self, application_id: UUID, approved_by: str) -> ApprovalResult:
        """Issue the account number, create the customer and approve the application.

        CustomerCreated is published before the aggregate's own ApplicationApproved event.
        """
        application = await load_application(self._applications, application_id)
        if application.status not in (ApplicationStatus.VERIFIED, ApplicationStatus.FLAGGED_SUSPICIOUS):
            raise InvalidStateTransitionError(
                f"Can only approve verified or flagged applications. Current status: {application.status.value}"
            )

        account_number = await self._account_numbers.ensure_unique(self._customers.exists_by_account_number)
        now = self._clock.now()
        customer = Customer(
            id=uuid.uuid4(),
            customer_reference=await self._customer_reference(),
            application_id=application_id,
            first_name=application.first_name,
            last_name=application.last_name,
            email=application.email,
            phone=application.phone,
            account_number=account_number,
            created_at=now,
        )
        await self._customers.add(customer)

        application.approve(customer.id, account_number, approved_by)
        await self._applications.save(application)

        self._events.publish(
            CustomerCreated(
                occurred_at=now, customer_id=customer.id, application_id=application_id, account_number=account_number
            )
        )
        publish_all(self._events, application.pending_events)
        application.clear_events()
        await self._audit.record(
            audit_types.APPLICATION_APPROVED,
            AuditActor.ADMIN,
            application_id,
            {
                "approvedBy": approved_by,
                "customerReference": customer.customer_reference,
                "accountNumber": mask_account_number(account_number),
            },
        )

        logger.info(
            "Approved application %s; customer %s with account %s",
            application_id,
            customer.customer_reference,
            mask_account_number(account_number),
        )
        return ApprovalResult(application=application, customer=customer)

    async def reject(self, application_id: UUID, reason: str, rejected_by: str) -> OnboardingApplication:
        application = await load_application(self._applications, application_id)
        application.reject(reason)
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.APPLICATION_REJECTED,
            AuditActor.ADMIN,
            application_id,
            {"rejectedBy": rejected_by, "reason": application.rejection_reason},
        )
        logger.info("Application %s rejected by %s", application_id, rejected_by)
        return application

    async def metrics(self, requested_by: str = "system") -> dict[str, int]:
        counts = await self._applications.count_by_status()
        result = {status.value: count for status, count in counts.items()}
        result["TOTAL"] = sum(counts.values())
        await self._audit.record(
            audit_types.METRICS_RETRIEVED,
            AuditActor.ADMIN,
            details={"performedBy": requested_by, "total": result["TOTAL"]},
        )
        return result

    async def find_by_account_number(self, account_number: str) -> OnboardingApplication:
        application = await self._applications.find_by_account_number(account_number)
        if application is None:
            raise ResourceNotFoundError("Application", mask_account_number(account_number))
        return application
