from sqlalchemy import JSON, Column, DateTime, String

from database import Base


class AuditEventRecord(Base):
    __tablename__ = "audit_events"

    id = Column(String(36), primary_key=True, index=True)
    # no foreign key: entries outlive anonymization and cover system-level actions
    application_id = Column(String(36), nullable=True, index=True)
    event_type = Column(String(64), nullable=False, index=True)
    actor = Column(String(32), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    details = Column(JSON, nullable=False, default=dict)
