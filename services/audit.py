"""
Audit trail: one append-only entry per applicant, officer, admin or data-subject action.

Entries are written through the request session, so an action and its audit entry
commit or roll back together.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Optional
from uuid import UUID

from domain.audit import AuditEvent
from domain.enums import AuditActor
from repositories.ports import AuditRepository
from utils.clock import Clock

logger = logging.getLogger(__name__)

OTP_SENT = "OTP_SENT"
OTP_VERIFIED = "OTP_VERIFIED"
OTP_VERIFICATION_FAILED = "OTP_VERIFICATION_FAILED"
APPLICATION_CREATED = "APPLICATION_CREATED"
DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
APPLICATION_SUBMITTED = "APPLICATION_SUBMITTED"
ADDITIONAL_INFO_PROVIDED = "ADDITIONAL_INFO_PROVIDED"
APPLICATION_ASSIGNED = "APPLICATION_ASSIGNED"
APPLICATION_VERIFIED = "APPLICATION_VERIFIED"
ADDITIONAL_INFO_REQUESTED = "ADDITIONAL_INFO_REQUESTED"
APPLICATION_FLAGGED_SUSPICIOUS = "APPLICATION_FLAGGED_SUSPICIOUS"
APPLICATIONS_QUERIED_BY_STATUS = "APPLICATIONS_QUERIED_BY_STATUS"
APPLICATION_APPROVED = "APPLICATION_APPROVED"
APPLICATION_REJECTED = "APPLICATION_REJECTED"
METRICS_RETRIEVED = "METRICS_RETRIEVED"
DATA_EXPORTED = "DATA_EXPORTED"
DATA_DELETION_REQUESTED = "DATA_DELETION_REQUESTED"
DATA_DELETED_ANONYMIZED = "DATA_DELETED_ANONYMIZED"


class AuditTrail:
    def __init__(self, repository: AuditRepository, clock: Clock | None = None):
        self._repository = repository
        self._clock = clock or Clock()

    async def record(
        self,
        event_type: str,
        actor: AuditActor,
        application_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditEvent:
        entry = AuditEvent(
            id=uuid.uuid4(),
            application_id=application_id,
            event_type=event_type,
            actor=actor,
            occurred_at=self._clock.now(),
            ip_address=ip_address,
            user_agent=user_agent,
            details=details or {},
        )
        await self._repository.add(entry)
        logger.debug("Audit %s by %s for application %s", event_type, actor.value, application_id)
        return entry

    async def history(self, application_id: UUID) -> list[AuditEvent]:
        return await self._repository.list_for_application(application_id)
