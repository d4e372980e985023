from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.enums import AuditActor


class AuditEvent(BaseModel):
    """Append-only record of who did what to which application. `application_id` is empty for system-level actions."""

    id: UUID
    application_id: Optional[UUID] = None
    event_type: str
    actor: AuditActor
    occurred_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}
