from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Integer, String, Text, func

from database import Base


class ApplicationRecord(Base):
    __tablename__ = "onboarding_applications"

    id = Column(String(36), primary_key=True, index=True)
    status = Column(String(32), nullable=False, default="INITIATED", index=True)
    version = Column(Integer, nullable=False, default=1)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    gender = Column(String(16), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    phone = Column(String(32), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    nationality = Column(String(2), nullable=False)
    social_security_number = Column(String(64), nullable=False, unique=True, index=True)
    # Address value object and owned collections, serialized via pydantic
    residential_address = Column(JSON, nullable=False)
    documents = Column(JSON, nullable=False, default=list)
    consents = Column(JSON, nullable=False, default=list)

    email_verified = Column(Boolean, nullable=False, default=False)
    phone_verified = Column(Boolean, nullable=False, default=False)

    customer_id = Column(String(36), nullable=True)
    account_number = Column(String(34), nullable=True, unique=True, index=True)
    requires_manual_review = Column(Boolean, nullable=False, default=False)
    review_reason = Column(Text, nullable=True)
    assigned_to = Column(String(100), nullable=True)
    marked_for_deletion = Column(Boolean, nullable=False, default=False)
    data_retention_until = Column(DateTime(timezone=True), nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
