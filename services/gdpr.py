"""
GDPR data-subject use cases: export (Art. 15/20), erasure request and the anonymization step.
"""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from domain.application import OnboardingApplication
from domain.errors import BusinessRuleViolationError
from domain.enums import AuditActor
from domain.events import DataExportRequested
from repositories.ports import ApplicationRepository
from services import audit as audit_types
from services.audit import AuditTrail
from services.document_store import DocumentStore
from services.event_sink import EventSink
from services.onboarding import load_application, save_and_publish
from utils.clock import Clock

logger = logging.getLogger(__name__)

EXPORT_LEGAL_BASIS = "Article 15 - Right to Data Portability"


class GdprService:
    def __init__(
        self,
        applications: ApplicationRepository,
        events: EventSink,
        audit: AuditTrail,
        documents: DocumentStore,
        clock: Clock | None = None,
    ):
        self._applications = applications
        self._events = events
        self._audit = audit
        self._documents = documents
        self._clock = clock or Clock()

    async def export_data(self, application_id: UUID, requested_by: str) -> dict[str, Any]:
        application = await load_application(self._applications, application_id)
        export = self._build_export(application)
        self._events.publish(
            DataExportRequested(occurred_at=self._clock.now(), application_id=application_id, requested_by=requested_by)
        )
        await self._audit.record(
            audit_types.DATA_EXPORTED,
            AuditActor.DATA_SUBJECT,
            application_id,
            {"requestedBy": requested_by, "format": "JSON"},
        )
        logger.info("Exported personal data for application %s", application_id)
        return export

    def _build_export(self, application: OnboardingApplication) -> dict[str, Any]:
        address = application.residential_address
        return {
            "applicationId": str(application.id),
            "status": application.status.value,
            "createdAt": application.created_at.isoformat(),
            "submittedAt": application.submitted_at.isoformat() if application.submitted_at else None,
            "approvedAt": application.approved_at.isoformat() if application.approved_at else None,
            "rejectedAt": application.rejected_at.isoformat() if application.rejected_at else None,
            "personalInfo": {
                "firstName": application.first_name,
                "lastName": application.last_name,
                "gender": application.gender.value,
                "dateOfBirth": application.date_of_birth.isoformat(),
                "email": application.email,
                "phone": application.phone,
                "nationality": application.nationality,
                "socialSecurityNumber": application.social_security_number,
            },
            "address": {
                "street": address.street,
                "houseNumber": address.house_number,
                "postalCode": address.postal_code,
                "city": address.city,
                "country": address.country,
            },
            "documents": [
                {
                    "id": str(d.id),
                    "documentType": d.document_type.value,
                    "uploadedAt": d.uploaded_at.isoformat(),
                    "status": d.status.value,
                    "verifiedAt": d.verified_at.isoformat() if d.verified_at else None,
                    "verifiedBy": d.verified_by,
                }
                for d in application.documents
            ],
            "consents": [
                {
                    "consentType": c.consent_type.value,
                    "grantedAt": c.granted_at.isoformat(),
                    "active": c.is_active,
                }
                for c in application.consents
            ],
            "accountInfo": (
                {"customerId": str(application.customer_id), "accountNumber": application.account_number}
                if application.customer_id
                else None
            ),
            "gdpr": {
                "dataRetentionUntil": (
                    application.data_retention_until.isoformat() if application.data_retention_until else None
                ),
                "markedForDeletion": application.marked_for_deletion,
                "exportedAt": self._clock.now().isoformat(),
                "format": "JSON",
                "legalBasis": EXPORT_LEGAL_BASIS,
            },
        }

    async def request_deletion(self, application_id: UUID) -> bool:
        """Mark a rejected application for erasure. Returns False when it was already marked."""
        application = await load_application(self._applications, application_id)
        if application.marked_for_deletion:
            logger.warning("Application %s is already marked for deletion", application_id)
            return False
        application.mark_for_deletion()
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.DATA_DELETION_REQUESTED,
            AuditActor.DATA_SUBJECT,
            application_id,
            {"retentionUntil": application.data_retention_until.isoformat()},
        )
        logger.info("Application %s marked for deletion", application_id)
        return True

    async def process_deletion(self, application_id: UUID) -> OnboardingApplication:
        application = await load_application(self._applications, application_id)
        if not application.marked_for_deletion:
            raise BusinessRuleViolationError(
                "Application is not marked for deletion. Please submit a deletion request first."
            )
        if not application.retention_elapsed():
            raise BusinessRuleViolationError(
                f"Cannot delete data before retention period ends: {application.data_retention_until.isoformat()}"
            )

        stored = [d.storage_path for d in application.documents]
        application.anonymize()
        await save_and_publish(self._applications, self._events, application)
        await self._audit.record(
            audit_types.DATA_DELETED_ANONYMIZED, AuditActor.SYSTEM, application_id, {"documentsRemoved": len(stored)}
        )
        for path in stored:
            self._documents.delete(path)
        logger.warning("Anonymized personal data for application %s", application_id)
        return application
